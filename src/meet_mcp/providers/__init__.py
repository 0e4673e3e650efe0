"""Google API adapters.

Adapters are stateless translation layers: validated arguments and a bearer
token in, normalized result dicts out.  They never validate, never refresh
credentials, and let transport failures propagate to the error classifier.
"""

from meet_mcp.providers.calendar import CalendarAdapter
from meet_mcp.providers.meet import MeetAdapter

__all__ = ["CalendarAdapter", "MeetAdapter"]
