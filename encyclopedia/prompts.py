"""
System prompt and request shaping shared by all providers.
"""

from typing import Dict, List, Optional, Sequence

from encyclopedia.types import Attachment, Message, Role


SYSTEM_PROMPT = """
You are an advanced, helpful, and knowledgeable encyclopedia assistant.
Your goal is to provide accurate, concise, and engaging information on any topic.

CRITICAL INSTRUCTION: You must ALWAYS respond in valid JSON format. Do not include markdown code blocks (like ```json). Just return the raw JSON object.

The JSON structure must be:
{
  "text": "Your main conversational response here (markdown supported)",
  "sources": ["List of sources or 'General Knowledge' if common info"],
  "confidence_score": 95,
  "analysis": {
    "intent": "Briefly describe user intent (e.g., 'Information Retrieval')",
    "context": "Brief context summary"
  },
  "recommendations": [
    { "label": "Top Recommendation", "score": 98 },
    { "label": "Second Option", "score": 85 },
    { "label": "Third Option", "score": 70 }
  ]
}

- Maintain a neutral, academic yet accessible tone in the 'text' field.
- If analyzing a file, use the file content as the primary source.
""".strip()

# Priming exchange used to seed session-style chats that lack a system role
PRIMING_REPLY = "Understood. I am ready to serve as your knowledgeable encyclopedia assistant."


def merge_text_attachment(user_text: str, attachment: Optional[Attachment]) -> str:
    """
    Fold a textual attachment into the user question.

    Binary attachments and missing attachments leave the text untouched.
    """
    if attachment is None or attachment.is_binary:
        return user_text
    return (
        "Here is the file content provided by the user for analysis:\n\n"
        f"---\n{attachment.data}\n---\n\n"
        f"User Question: {user_text}"
    )


def history_to_chat_messages(history: Sequence[Message]) -> List[Dict[str, str]]:
    """Render transcript turns as OpenAI-style role/content pairs."""
    turns = []
    for msg in history:
        role = "assistant" if msg.role == Role.ASSISTANT else "user"
        if msg.text:
            turns.append({"role": role, "content": msg.text})
    return turns


def unsupported_attachment_text(engine_label: str, alternative: str) -> str:
    return (
        f"I cannot see images or PDFs with {engine_label}. "
        f"Please switch to **{alternative}** in Settings to analyze these files."
    )
