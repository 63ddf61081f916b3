"""CLI 模块"""
