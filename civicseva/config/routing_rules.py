"""
Routing rule table.

One rule per report category. The defaults below can be replaced without code
changes by pointing ROUTING_RULES_PATH at a JSON file shaped like:

    {
      "roads": {"department": "Public Works", "default_assignee": "...",
                "priority_multiplier": 1.2, "keywords": ["pothole", "road"]},
      ...
    }
"""
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from civicseva.database.models import CATEGORIES

logger = logging.getLogger(__name__)


class RoutingRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    department: str
    default_assignee: Optional[str] = None
    priority_multiplier: float = Field(1.0, ge=0)
    keywords: List[str] = Field(default_factory=list)


DEFAULT_ROUTING_RULES: Dict[str, RoutingRule] = {
    "roads": RoutingRule(
        category="roads",
        department="Public Works",
        default_assignee="John Smith - Public Works",
        priority_multiplier=1.2,
        keywords=["pothole", "road", "street", "pavement", "traffic", "signal"],
    ),
    "lighting": RoutingRule(
        category="lighting",
        department="Utilities",
        default_assignee="Sarah Johnson - Utilities",
        priority_multiplier=0.8,
        keywords=["light", "lamp", "dark", "electricity", "power", "bulb"],
    ),
    "sanitation": RoutingRule(
        category="sanitation",
        department="Sanitation",
        default_assignee="Mike Davis - Sanitation",
        priority_multiplier=1.5,
        keywords=["garbage", "trash", "waste", "dirty", "smell", "litter"],
    ),
    "water": RoutingRule(
        category="water",
        department="Water Department",
        default_assignee="Lisa Chen - Water Department",
        priority_multiplier=2.0,
        keywords=["water", "leak", "pipe", "drain", "flood", "sewer"],
    ),
    "parks": RoutingRule(
        category="parks",
        department="Parks",
        default_assignee="Tom Wilson - Parks",
        priority_multiplier=0.6,
        keywords=["park", "tree", "grass", "playground", "bench", "garden"],
    ),
    "safety": RoutingRule(
        category="safety",
        department="Safety",
        default_assignee="Anna Rodriguez - Safety",
        priority_multiplier=3.0,
        keywords=["danger", "unsafe", "hazard", "emergency", "accident", "injury"],
    ),
    "noise": RoutingRule(
        category="noise",
        department="Environmental",
        default_assignee="David Kim - Environmental",
        priority_multiplier=0.7,
        keywords=["noise", "loud", "sound", "music", "construction", "disturb"],
    ),
}


def load_routing_rules(path: Optional[str] = None) -> Dict[str, RoutingRule]:
    """Return the rule table, read from a JSON file when a path is given."""
    if not path:
        return dict(DEFAULT_ROUTING_RULES)

    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    rules = {}
    for category, body in raw.items():
        if category not in CATEGORIES:
            raise ValueError(f"Unknown category in routing rules: {category}")
        rules[category] = RoutingRule(category=category, **body)

    logger.info(f"Loaded {len(rules)} routing rules from {path}")
    return rules
