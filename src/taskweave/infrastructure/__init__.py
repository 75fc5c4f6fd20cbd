"""Infrastructure 模块"""
