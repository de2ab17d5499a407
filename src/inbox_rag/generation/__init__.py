"""
Generation: grounded answers over retrieved email context.
"""

from inbox_rag.generation.composer import Answer, AnswerComposer, fallback_answer
from inbox_rag.generation.prompts import build_answer_prompt

__all__ = ["Answer", "AnswerComposer", "build_answer_prompt", "fallback_answer"]
