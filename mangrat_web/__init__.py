"""
HTTP layer for Mangrat.

create_app() in mangrat_web.app builds the FastAPI application and mounts:
- mangrat_web.auth_routes.router  (register, login, logout, me, upgrade)
- mangrat_web.chat_routes.router  (chat, memory, clear-memory, usage)
"""
