"""内置方案驱动，由 core.resolver.default_registry() 惰性注册"""
