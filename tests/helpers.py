"""
Builders for test data shared across test modules.
"""

import json
from typing import List, Optional

from src.pm_dojo.pipeline.schemas import Intelligence


def make_intelligence(episode_id: str = "brian-chesky", companies: Optional[List[dict]] = None, **extra) -> Intelligence:
    data = {
        "episode_id": episode_id,
        "guest_name": extra.pop("guest_name", "Brian Chesky"),
        "episode_title": extra.pop("episode_title", "Brian Chesky's new playbook"),
        "companies": companies if companies is not None else [
            {
                "name": "Airbnb",
                "is_guest_company": True,
                "mention_context": "Airbnb rethinking its product org during the pandemic",
                "decisions": [
                    {
                        "what": "Cut most of the product roadmap",
                        "why": "Travel demand collapsed",
                        "outcome": "Refocused on core hosting",
                        "quote": "We went back to basics.",
                    }
                ],
                "opinions": [{"opinion": "Founders should stay in the details", "quote": "Be in the details."}],
            }
        ],
    }
    data.update(extra)
    return Intelligence.model_validate(data)


def question_json(**overrides) -> str:
    """A plausible question completion as the model would return it."""
    data = {
        "id": "model-chosen-id",
        "type": "behavioral",
        "company": "Some Other Co",
        "difficulty": "medium",
        "situation_brief": "According to the guest, the company lost most of its revenue in weeks.",
        "question": "Tell me about a time you had to cut scope drastically.",
        "follow_ups": ["What did you cut first?", "How did you communicate it?"],
        "model_answer": {
            "what_happened": "According to Brian Chesky, Airbnb cut most projects.",
            "key_reasoning": "Focus on the core.",
            "key_quote": "We went back to basics.",
            "frameworks_mentioned": [],
            "full_answer": "Start with the customer...",
        },
    }
    data.update(overrides)
    return json.dumps(data)
