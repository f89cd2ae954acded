from __future__ import annotations

import re
from enum import Enum
from typing import Dict, Optional


class InterviewType(str, Enum):
    SOFTWARE_ENGINEER = "software-engineer"
    TECHNICAL_PRODUCT_SUPPORT = "technical-product-support"


SYSTEM_PROMPTS: Dict[InterviewType, str] = {
    InterviewType.SOFTWARE_ENGINEER: (
        "You are an experienced technical interviewer for a software engineering position. "
        "Your task is to conduct a technical interview that assesses the candidate's programming knowledge, "
        "problem-solving abilities, and system design skills. Ask challenging but fair questions, follow up on "
        "the candidate's responses, and provide a realistic interview experience. Be conversational and "
        "encouraging, but also thorough in your evaluation."
    ),
    InterviewType.TECHNICAL_PRODUCT_SUPPORT: (
        "You are an experienced technical interviewer for a technical product support position. "
        "Your task is to conduct a technical interview that assesses the candidate's troubleshooting skills, "
        "customer service abilities, and technical knowledge. Ask questions about handling difficult customer "
        "situations, diagnosing technical problems, and explaining complex concepts in simple terms. Be "
        "conversational and encouraging, but also thorough in your evaluation."
    ),
}

FEEDBACK_PROMPT = (
    "The interview is over. Acting as the interviewer, give the candidate written feedback on the whole "
    "conversation above. Cover: overall impression, strengths, areas for improvement with concrete examples "
    "from their answers, and a hiring recommendation (strong no, no, lean no, lean yes, yes, strong yes). "
    "Address the candidate directly and keep it under 400 words."
)

_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")


def build_system_prompt(interview_type: InterviewType, job_description: Optional[str] = None) -> str:
    prompt = SYSTEM_PROMPTS[InterviewType(interview_type)]
    job_description = (job_description or "").strip()
    if job_description:
        prompt += (
            "\n\nThe candidate is interviewing for the following role. Tailor your questions to it:\n"
            f"{job_description}"
        )
    return prompt


def speakable_text(text: str) -> str:
    """Drop fenced code samples; they are shown, not read aloud."""
    without_code = _CODE_BLOCK_RE.sub(" ", text or "")
    return re.sub(r"\s+", " ", without_code).strip()
