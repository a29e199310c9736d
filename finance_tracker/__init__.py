"""Top-level package for the Finance Tracker.

The primary modules are:

* ``ledger`` - transaction CRUD that keeps category summaries current
* ``summaries`` - precomputed category and monthly totals
* ``budgets``, ``goals`` and ``forecast`` - planning calculations

To run the dashboard from the command line you can execute:

```bash
streamlit run finance_tracker/Home.py
```
"""

from . import ledger  # noqa: F401  # re-exported for convenience
from . import summaries  # noqa: F401  # re-exported for convenience

__all__ = ["ledger", "summaries"]
