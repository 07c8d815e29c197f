"""
Initialisation de l'application FastAPI: factory, lifespan, middlewares, routers, exceptions.
"""
