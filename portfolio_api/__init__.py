"""
Portfolio site backend.

A FastAPI service serving projects, skills, ratings and contact messages
from a relational store, with admin mutations behind a bearer-token login.
"""
