"""Application 模块"""
