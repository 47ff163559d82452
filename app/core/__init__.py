"""Application core: lifespan, middleware, logging and error tracking."""
