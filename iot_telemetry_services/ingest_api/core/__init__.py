"""Core module - dominio, eventos, provisión y push en vivo.

Estructura:
- domain/      → Modelos y bus de eventos
- redis/       → Publicación en vivo (pub/sub)
- provisioning → Alta de la flota por defecto
"""
