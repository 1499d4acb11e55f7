"""
Template pipeline: lexer, statement parser, inheritance resolver and renderer.
"""
