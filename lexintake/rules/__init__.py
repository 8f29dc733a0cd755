"""
lexintake Rules Engine (WF3)
=============================

Declarative validation of intake payloads:

    paths      — field path grammar and resolution
    catalog    — rule catalog loading and whole-document validation
    evaluator  — pure evaluation of a payload against a catalog
    payload    — assembly of structured sections from flat form answers
    runner     — versioned, idempotent persistence of evaluations
"""
