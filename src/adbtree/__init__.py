"""
adbtree
Browse the file system of connected Android devices as a tree, through adb
"""

__version__ = "0.1.0"
