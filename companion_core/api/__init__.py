"""展示层使用的启动入口。"""
