"""
Import error recovery application package.
"""
