"""
Transaction lifecycle engine for a peer-to-peer resale marketplace.
"""
