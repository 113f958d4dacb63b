"""
Collaborator services: event log, recovery codes, org policy and mail
"""
