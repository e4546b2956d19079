"""
MemeMarket API
"""
