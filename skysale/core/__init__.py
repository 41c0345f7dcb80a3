"""Core engine: models, storage, auctions, tiers and scheduling"""
