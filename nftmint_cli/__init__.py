"""
Command line interface for the NFT mint SDK.
"""
