"""
Business services for GrowthKit.
"""
