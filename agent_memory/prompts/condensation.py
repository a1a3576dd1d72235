"""Prompt for condensing a cluster of near-duplicate memories."""

CONDENSATION_PROMPT = """You are an expert at consolidating memory records.

The following statements about the same user say (nearly) the same thing. Condense them into ONE statement that preserves every distinct detail.

## Statements:
{statements}

## Instructions:
- Write in third person ("User ...")
- Keep it to a single sentence where possible
- Do not invent details that are not in the statements

## Condensed statement:"""
