"""
                Panchayat Kitchen Marketplace

Backend for a local food marketplace: cloud kitchen meal slots, homemade
food from neighbourhood cooks and indoor event catering, with cooks,
delivery staff and admins working each order.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
