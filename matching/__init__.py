"""
Matching Module

IB student-to-program matching: scoring, caching and the HTTP routes.
"""
