"""
Feature modules.

- ``tiling``: route to H3 tile conversion and line/area classification
- ``capture``: the capture transaction engine
- ``rollback``: reversal of an activity's claims
- ``leaderboard``: ranked ownership snapshots and their refresh jobs
- ``territory``: read-only ledger queries
- ``activity``: activity intake and deletion
"""
