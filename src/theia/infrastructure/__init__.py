"""Infrastructure adapters: reasoning service, persistence, tools and runtime."""
