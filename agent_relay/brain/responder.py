from typing import Dict, Optional

from agent_relay.brain.classifier import has_word

GREETINGS = {
    "morning": "\U0001F305 Good morning! How can I help today?",
    "afternoon": "\U0001F324️ Good afternoon! What can I do for you?",
    "evening": "\U0001F306 Good evening! How can I assist?",
}
DEFAULT_GREETING = "\U0001F44B Hello! How can I help today?"

ANSWERS: Dict[str, str] = {
    "thanks": "You’re welcome! Anything else I can help with? \U0001F64C",
    "goodbye": "Thanks for visiting Khisima! Have a great day. \U0001F44B",
    "howareyou": "I’m doing great, thanks! How can I help with your project?",
    "ack": "Got it. What else would you like to know?",
    "humor": "\U0001F604 Haha! Now, how can I help you today?",
    "about": (
        "Khisima is a language services & data company focused on African languages. "
        "We deliver translation/localization, language data (collection, annotation, evaluation), "
        "AI language consulting, cultural adaptation, voice-over & dubbing, and multilingual SEO."
    ),
    "services": (
        "We offer: Translation & Localization; Language Data (collection, annotation, evaluation for NLP/LLM); "
        "AI Language Consulting; Cultural Adaptation; Voice-over & Dubbing; Multilingual SEO. "
        "Ask for details on any."
    ),
    "languages": (
        "We support Kinyarwanda, Swahili, English, French, Amharic, Luganda, Chewa, Wolof, Oromo, "
        "and more. Tell me which you need and I’ll confirm coverage."
    ),
    "pricing": (
        "Pricing depends on scope, languages, and turnaround. Translation is usually per word; "
        "data services are per task or hour. Share your brief and we’ll send a tailored quote."
    ),
    "turnaround": (
        "Turnaround depends on volume, language pair, and complexity. Standard docs can be 24–72 hours; "
        "bigger/technical projects get a clear milestone plan. Share your deadline and we’ll advise."
    ),
    "nda": (
        "We take confidentiality seriously. Happy to sign an NDA and follow secure data handling "
        "(least-privilege access). Isolated workflows available on request."
    ),
    "contact": "You can reach us at info@khisima.com or +250 789 619 370. You can also share details here.",
    "location": "We’re based in Kigali, Rwanda, with a distributed team across Africa.",
    "data_services": (
        "We handle language data: collection (speech/text), annotation (NER, sentiment, QA, MT QE, etc.), "
        "and evaluation/benchmarking for NLP/LLMs. We can build custom datasets and evaluators for "
        "African languages."
    ),
    "voiceover": (
        "We provide voice-over & dubbing in African languages: script adaptation, casting, "
        "studio-grade recording, and QC for broadcast/online."
    ),
    "seo": (
        "We offer multilingual SEO: market-specific keyword research, culturally adapted content, "
        "and on-page optimization aligned with your brand."
    ),
    "careers": (
        "We’re always happy to meet talented linguists, data annotators, and engineers. "
        "Check the Careers page or send a short intro + CV."
    ),
    "quote": (
        "Great! Share source/target languages, word count or dataset size, domain (e.g., legal/medical), "
        "and your deadline. We’ll prepare a tailored quote."
    ),
    "workplace": (
        "We operate across Africa and collaborate with partners in multiple countries. "
        "Which market are you targeting?"
    ),
}


def greeting_for(raw_text: str) -> str:
    for part_of_day, greeting in GREETINGS.items():
        if has_word(raw_text, part_of_day):
            return greeting
    return DEFAULT_GREETING


def respond(intent: str, raw_text: str = "") -> Optional[str]:
    """Canned answer for an intent, or None when the intent has no entry"""
    if intent == "greeting":
        return greeting_for(raw_text)
    return ANSWERS.get(intent)
