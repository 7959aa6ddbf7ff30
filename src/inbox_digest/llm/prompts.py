from __future__ import annotations

from typing import Sequence

from inbox_digest.models import DigestEntry, NormalizedMessage

CLASSIFY_SYSTEM = "You are an email assistant that classifies emails."

SUMMARIZE_SYSTEM = "You are an email assistant that classifies and summarizes emails."

META_SYSTEM = "You are an email assistant that summarizes emails for a user."

BRIEF_SYSTEM = (
    "You are an email summarization assistant. Provide a concise summary and list important points."
)


def classify_prompt(messages: Sequence[NormalizedMessage]) -> str:
    # Subject and sender only: triage must stay cheap.
    listing = "\n\n".join(
        f"Email {i}:\nFrom: {m.sender}\nSubject: {m.subject}"
        for i, m in enumerate(messages, start=1)
    )
    return (
        "Classify the following emails into these categories: "
        "Urgent, Important, Good to know, Not important, Spam. "
        "For each, provide the subject and sender exactly as given. "
        "Respond in JSON with keys: urgent, important, goodToKnow, notImportant, spam. "
        "Each value should be an array of objects with fields: subject, sender."
        f"\n\n{listing}"
    )


def summarize_prompt(batch: Sequence[NormalizedMessage]) -> str:
    listing = "\n\n".join(
        f"Email {i}:\nFrom: {m.sender}\nSubject: {m.subject}\nBody: {m.body}\nDate: {m.date}"
        for i, m in enumerate(batch, start=1)
    )
    return (
        "Summarize and classify the following emails. "
        "For each, provide the subject, sender, and a one-sentence summary. "
        "Respond in JSON with keys: urgent, important, goodToKnow, notImportant. "
        "Each value should be an array of objects with fields: subject, sender, summary, "
        "and date (ISO 8601, copied from the email)."
        f"\n\n{listing}"
    )


def meta_prompt(entries: Sequence[DigestEntry]) -> str:
    listing = "\n\n".join(
        f"Email {i}:\nFrom: {e.sender}\nSubject: {e.subject}\nSummary: {e.summary}\nDate: {e.date}"
        for i, e in enumerate(entries, start=1)
    )
    return (
        "Provide a high-level summary of the user's inbox as a whole. "
        "Do NOT list or describe individual emails. Instead, generalize about the main topics, "
        "tone, and any important actions or trends you notice. "
        "Limit your response to 2-3 sentences."
        f"\n\n{listing}"
    )


def brief_prompt(messages: Sequence[NormalizedMessage]) -> str:
    listing = "\n\n".join(f"From: {m.sender}\nSubject: {m.subject}\nBody: {m.body}" for m in messages)
    return (
        "Please summarize the following emails and extract important points. "
        "Put the summary on the first line, then one important point per line."
        f"\n\n{listing}"
    )
