"""
Adapters Layer - External Integrations

Price sources, crawlers, the row store and text formatting.
"""
