from __future__ import annotations

from voice_interview.conversation import Conversation
from voice_interview.prompts import InterviewType, build_system_prompt


def test_starts_with_system_message():
    conversation = Conversation("be an interviewer")
    assert len(conversation) == 1
    assert conversation.messages[0].role == "system"
    assert conversation.system_prompt == "be an interviewer"
    assert conversation.transcript() == []


def test_turns_append_user_then_assistant_in_order():
    conversation = Conversation("sys")
    conversation.append_user("first answer")
    conversation.append_assistant("first reply")
    conversation.append_user("second answer")
    conversation.append_assistant("second reply")
    assert [(m.role, m.content) for m in conversation.messages] == [
        ("system", "sys"),
        ("user", "first answer"),
        ("assistant", "first reply"),
        ("user", "second answer"),
        ("assistant", "second reply"),
    ]


def test_payload_strips_original_content():
    conversation = Conversation("sys")
    conversation.append_user("provider text", original_content="local text")
    assert conversation.messages[1].original_content == "local text"
    assert conversation.to_payload() == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "provider text"},
    ]


def test_reset_leaves_single_system_message_and_bumps_generation():
    conversation = Conversation(build_system_prompt(InterviewType.SOFTWARE_ENGINEER))
    conversation.append_user("answer")
    conversation.append_assistant("reply")
    new_prompt = build_system_prompt(InterviewType.TECHNICAL_PRODUCT_SUPPORT, "Support engineer, SaaS")

    assert conversation.reset(new_prompt) == 1
    assert len(conversation) == 1
    assert conversation.messages[0].role == "system"
    assert conversation.system_prompt == new_prompt
    assert conversation.generation == 1


def test_messages_property_is_a_copy():
    conversation = Conversation("sys")
    conversation.messages.append("junk")
    assert len(conversation) == 1
