"""
校园食堂订餐后端
"""

__version__ = "1.0.0"
