"""
Classroom Analytics Cache

Tiered read-through caching and derived analytics for academy dashboards:
1. Serves dashboard data from process memory, then a durable snapshot store
2. Falls back to the record origin on miss and writes through both tiers
3. Invalidates by tenant and data class when records change
4. Computes statistics, daily trends and classroom/student leaderboards
"""

__version__ = "0.1.0"
