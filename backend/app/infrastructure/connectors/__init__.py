"""
Connector Infrastructure Package
Outbound SMS and email integrations
"""
