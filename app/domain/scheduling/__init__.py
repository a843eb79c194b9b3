"""
Scheduling domain

engine.py holds the pure rules (interval overlap, conflict selection, slot
generation); service.py applies them against the database inside a
transaction that holds the doctor's row lock.
"""
