"""
Task Manager service package.
"""
