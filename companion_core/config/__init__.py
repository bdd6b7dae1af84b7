"""配置加载。"""
