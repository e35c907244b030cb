"""
Task Manager application: HTTP surface, policy, dependency graph and storage.
"""
