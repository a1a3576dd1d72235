"""Prompt for extracting candidate memories from a session transcript."""

CANDIDATE_EXTRACTION_PROMPT = """You are a memory extraction agent for a conversational assistant.

Your task is to read the conversation and extract durable knowledge about the USER that is worth remembering in future sessions.

## Existing Memories:
{existing_memories}

## Conversation:
{conversation}
{instructions}
## Rules:
1. Only extract information about the USER, not general knowledge
2. One statement per memory, written in third person ("User likes espresso")
3. kind is "preference" for likes, dislikes and how the user wants things done; "fact" for everything else
4. salience is your confidence/importance in [0, 1]; hard constraints such as allergies are close to 1.0
5. Do NOT repeat an existing memory unless the conversation restates or changes it
6. Skip transient states ("is tired right now")

## Output Format (JSON):
{{
    "memories": [
        {{"kind": "fact | preference", "content": "...", "salience": 0.0 to 1.0}}
    ]
}}

Return {{"memories": []}} if nothing is worth remembering.

## Output:"""

EXTRACTION_INSTRUCTIONS_BLOCK = """
## Agent-specific hints:
{extraction_instructions}
"""
