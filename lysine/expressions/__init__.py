"""
Expression language: AST, parser, value model and evaluator.
"""
