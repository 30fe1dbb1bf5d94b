"""
Common code for the dynamic_ts test cases.
"""
