"""
Prompt templates for intelligence extraction from a podcast transcript.

The model is told to stay inside the transcript: no external knowledge and
exact quotes only. Empty arrays are an acceptable answer.
"""

SYSTEM_PROMPT = """You are analyzing a Lenny's Podcast transcript to extract structured intelligence.

CRITICAL: Extract ONLY what is explicitly stated in the transcript.
- Do NOT add external knowledge
- Do NOT infer or assume facts not stated
- If something isn't mentioned, don't include it
- Capture direct quotes exactly as stated"""

OUTPUT_SCHEMA = """{
  "companies": [
    {
      "name": "<company name>",
      "is_guest_company": <true if guest works/worked there>,
      "mention_context": "<brief context of why this company was discussed>",
      "decisions": [
        {
          "what": "<what they decided or did>",
          "when": "<when, if mentioned>",
          "why": "<reasoning if explained>",
          "outcome": "<result as described by guest>",
          "quote": "<direct quote about this decision>"
        }
      ],
      "opinions": [
        {
          "opinion": "<guest's opinion or analysis>",
          "quote": "<supporting quote>"
        }
      ],
      "metrics_mentioned": ["<any specific numbers, percentages, or metrics discussed>"]
    }
  ],
  "frameworks": [
    {
      "name": "<framework name as guest called it>",
      "creator": "<who created it, if mentioned>",
      "category": "<prioritization|strategy|growth|metrics|design|execution|leadership|ai_ml>",
      "explanation": "<how it works>",
      "when_to_use": "<when to apply it, if explained>",
      "example": "<example guest gave>",
      "quote": "<direct quote explaining framework>"
    }
  ],
  "question_seeds": [
    {
      "type": "<behavioral|product_sense|product_design|rca|guesstimate|tech|ai_ml|strategy|metrics>",
      "company": "<company this relates to>",
      "situation": "<situation or problem described>",
      "what_happened": "<outcome or decision>",
      "usable_quotes": ["<quote 1>", "<quote 2>"]
    }
  ],
  "memorable_quotes": [
    {
      "quote": "<memorable quote>",
      "topic": "<what it's about>",
      "context": "<brief context>"
    }
  ]
}"""

PROMPT_TEMPLATE = """EPISODE: "{episode_title}"
GUEST: {guest_name}

TRANSCRIPT:
{transcript}

---

Extract intelligence from this transcript. Return ONLY this JSON:
{output_schema}

Include ONLY items explicitly discussed. Empty arrays are fine if nothing fits a category."""


def build_messages(episode_title: str, guest_name: str, transcript: str) -> list:
    user_prompt = PROMPT_TEMPLATE.format(
        episode_title=episode_title,
        guest_name=guest_name,
        transcript=transcript,
        output_schema=OUTPUT_SCHEMA,
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]
