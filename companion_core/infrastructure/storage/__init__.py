"""会话记录的本地持久化。"""
