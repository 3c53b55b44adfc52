"""
Daily Moments service package.

A FastAPI application that keeps each partner's daily view in sync with
the shared per-day record: whose turn it is to pick the question, the
record itself, both answers, and the chat about yesterday.
"""
