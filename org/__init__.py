"""org/ -- Organization model (users, teams) and its visibility engine.

Layer rule: org/models.py, org/policy.py and org/store.py import only core/
plus stdlib and third-party libraries. org/service.py additionally borrows
the password hasher from auth/tokens.py. api/ imports from org/, never the
other way around.
"""
