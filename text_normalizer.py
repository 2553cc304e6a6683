#!/usr/bin/env python3
"""
Text Normalization Module for Quiz Question Matching

Canonicalizes raw question and answer text captured from quiz pages:
1. Decodes HTML entities and strips markup tags
2. Lower-cases and collapses whitespace
3. Removes numbering prefixes ("Question 3:", "12.") and answer-letter
   markers ("A.", "(B)")
4. Removes punctuation, keeping question marks and math symbols because
   structural similarity looks at them

normalize() is idempotent: normalize(normalize(x)) == normalize(x).
"""

import re
import html
import hashlib
from typing import List

# Compiled once, shared by every call
TAG_PATTERN = re.compile(r'</?[a-zA-Z][^<>]*>')
WHITESPACE_PATTERN = re.compile(r'\s+')
QUESTION_PREFIX_PATTERN = re.compile(r'^(?:question\s*\d+\s*[:.)]\s*|q\s*\d+\s*[:.)]\s*|\d+\s*[.)]\s+)')
LEADING_LETTER_PATTERN = re.compile(r'^(?:\([a-z]\)|[a-z][.)])\s+')
TRAILING_LETTER_PATTERN = re.compile(r'\s+\([a-z]\)$')
INNER_APOSTROPHE_PATTERN = re.compile(r"(?<=\w)['’`](?=\w)")
PUNCTUATION_PATTERN = re.compile(r'[^\w\s+\-*/=<>?%^]')
TOKEN_PATTERN = re.compile(r'[^\W_]+')

MAX_UNESCAPE_PASSES = 5


def _decode_entities(text: str) -> str:
    """Unescape until stable so double-encoded entities ("&amp;lt;") are fully decoded"""
    for _ in range(MAX_UNESCAPE_PASSES):
        decoded = html.unescape(text)
        if decoded == text:
            break
        text = decoded
    return text


def _strip_tags(text: str) -> str:
    while True:
        stripped = TAG_PATTERN.sub(' ', text)
        if stripped == text:
            return stripped
        text = stripped


def _strip_markers(text: str) -> str:
    """Remove numbering prefixes and answer-letter markers, repeatedly ("1. Question 2: ...")"""
    while True:
        stripped = QUESTION_PREFIX_PATTERN.sub('', text, count=1)
        stripped = LEADING_LETTER_PATTERN.sub('', stripped, count=1)
        stripped = TRAILING_LETTER_PATTERN.sub('', stripped, count=1)
        stripped = stripped.strip()
        if stripped == text:
            return stripped
        text = stripped


def _normalize_pass(text: str) -> str:
    text = _decode_entities(text)
    text = _strip_tags(text)
    text = WHITESPACE_PATTERN.sub(' ', text.lower()).strip()
    text = _strip_markers(text)

    # "don't" -> "dont"; every other punctuation mark becomes a separator
    text = INNER_APOSTROPHE_PATTERN.sub('', text)
    text = PUNCTUATION_PATTERN.sub(' ', text)
    return WHITESPACE_PATTERN.sub(' ', text).strip()


def normalize(text) -> str:
    """Canonical form of question or answer text; non-string or empty input gives ''"""
    if not isinstance(text, str) or not text:
        return ''

    # Lower-casing can expose new tags or markers ("<İ>" -> "<i >"); later passes only shorten
    while True:
        normalized = _normalize_pass(text)
        if normalized == text:
            return normalized
        text = normalized


def normalize_option(text) -> str:
    """Canonical form of a single answer option"""
    return normalize(text)


def tokenize(text: str) -> List[str]:
    """Word tokens of an already normalized string"""
    if not text:
        return []
    return TOKEN_PATTERN.findall(text)


def content_words(text: str, min_length: int = 3) -> List[str]:
    """Tokens with at least min_length characters"""
    return [token for token in tokenize(text) if len(token) >= min_length]


def question_hash(text) -> str:
    """Exact-match key: MD5 of the normalized text"""
    return hashlib.md5(normalize(text).encode('utf-8')).hexdigest()
