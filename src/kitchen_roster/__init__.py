"""
Kitchen Roster with Automatic Leave Allocation

Monthly kitchen staff roster support: statutory leave quotas, automatic
leave assignment under group coverage rules, and holiday staffing checks.
"""

__version__ = "1.0.0"
__author__ = "Kitchen Roster Team"
