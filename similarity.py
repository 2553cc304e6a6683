#!/usr/bin/env python3
"""
Similarity Library for Quiz Question Matching

Independent, pure scoring functions over two normalized strings. Every
function returns a score in [0, 1]:

- character_similarity: normalized Levenshtein similarity
- word_set_similarity: Jaccard over content words
- positional_similarity: position-weighted token agreement
- keyword_overlap: Jaccard over extracted keywords
- semantic_context_similarity: agreement of domain-taxonomy densities
- structural_similarity: length, word count, question mark and symbol shape
- composite_similarity: configured weighted sum of the above
"""

import re
from functools import lru_cache
from typing import Dict, List, Optional, Tuple

import numpy as np
from rapidfuzz.distance import Levenshtein

from text_normalizer import tokenize

STOP_WORDS = frozenset({
    'the', 'and', 'for', 'are', 'but', 'not', 'you', 'all', 'any', 'can', 'had',
    'her', 'was', 'one', 'our', 'out', 'day', 'get', 'has', 'him', 'his', 'how',
    'its', 'may', 'new', 'now', 'old', 'see', 'two', 'who', 'did', 'she', 'use',
    'way', 'what', 'when', 'where', 'which', 'while', 'with', 'that', 'this',
    'these', 'those', 'they', 'them', 'their', 'there', 'then', 'than', 'from',
    'have', 'will', 'would', 'could', 'should', 'been', 'being', 'were', 'into',
    'about', 'above', 'after', 'again', 'against', 'below', 'between', 'both',
    'does', 'doing', 'down', 'during', 'each', 'further', 'here', 'more', 'most',
    'other', 'over', 'same', 'some', 'such', 'only', 'own', 'very', 'just',
    'also', 'following', 'true', 'false', 'select', 'choose', 'correct',
    'answer', 'answers', 'best', 'statement', 'statements', 'question',
})

# Short or common terms that still identify a question
IMPORTANT_TERMS = frozenset({
    'sin', 'cos', 'tan', 'log', 'sum', 'mean', 'mode', 'cpu', 'ram', 'rom',
    'dna', 'rna', 'atp', 'gdp', 'api', 'sql', 'css', 'xml', 'tcp', 'udp', 'ip',
    'ph', 'pi', 'html', 'http', 'area', 'mass', 'rate', 'cell', 'gene', 'loop',
    'node', 'tree', 'heap', 'list', 'array', 'stack', 'queue', 'graph',
    'matrix', 'vector', 'integral', 'derivative', 'limit', 'prime', 'ratio',
})

TAXONOMIES: Dict[str, Tuple[str, ...]] = {
    'quantitative': (
        'calculate', 'compute', 'solve', 'equation', 'formula', 'value', 'number',
        'sum', 'product', 'total', 'percent', 'percentage', 'average', 'mean',
        'median', 'probability', 'ratio', 'rate', 'integral', 'derivative',
        'square', 'root', 'degree', 'angle', 'area', 'volume', 'length',
    ),
    'qualitative': (
        'describe', 'explain', 'why', 'reason', 'cause', 'effect', 'purpose',
        'role', 'function', 'meaning', 'example', 'characteristic', 'difference',
        'compare', 'contrast', 'define', 'definition', 'concept', 'theory',
    ),
    'programming': (
        'code', 'function', 'variable', 'loop', 'array', 'list', 'class', 'object',
        'method', 'return', 'output', 'input', 'compile', 'runtime', 'syntax',
        'algorithm', 'complexity', 'recursion', 'pointer', 'string', 'integer',
    ),
    'scientific': (
        'cell', 'energy', 'force', 'mass', 'atom', 'molecule', 'reaction',
        'element', 'organism', 'species', 'gene', 'protein', 'enzyme', 'velocity',
        'acceleration', 'temperature', 'pressure', 'wave', 'electron', 'charge',
    ),
}

SYMBOL_PATTERN = re.compile(r'[+\-*/=]')

DEFAULT_COMPOSITE_WEIGHTS = {
    'character': 0.4,
    'word_set': 0.4,
    'positional': 0.2,
}


def _clamp(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


def _jaccard(first: set, second: set) -> float:
    union = first | second
    if not union:
        return 0.0
    return len(first & second) / len(union)


def _ratio(a: float, b: float) -> float:
    """min/max ratio, 1.0 when both are zero"""
    if a == 0 and b == 0:
        return 1.0
    return min(a, b) / max(a, b)


def character_similarity(text1: str, text2: str) -> float:
    """1 - levenshtein / max length; both empty gives 1, one empty gives 0"""
    if not text1 and not text2:
        return 1.0
    if not text1 or not text2:
        return 0.0
    return _clamp(Levenshtein.normalized_similarity(text1, text2))


def word_set_similarity(text1: str, text2: str, min_length: int = 3) -> float:
    """Jaccard over tokens longer than two characters"""
    words1 = {w for w in tokenize(text1) if len(w) >= min_length}
    words2 = {w for w in tokenize(text2) if len(w) >= min_length}
    if not words1 and not words2:
        # Nothing to compare on; fall back to exact agreement
        return 1.0 if text1 == text2 else 0.0
    return _clamp(_jaccard(words1, words2))


def positional_similarity(text1: str, text2: str) -> float:
    """Tokens at equal positions agree, earlier positions count more (1 / (1 + 0.1 i))"""
    tokens1 = tokenize(text1)
    tokens2 = tokenize(text2)
    if tokens1 == tokens2:
        return 1.0 if tokens1 or text1 == text2 else 0.0

    length = max(len(tokens1), len(tokens2))
    weights = 1.0 / (1.0 + 0.1 * np.arange(length))
    agreement = np.zeros(length)
    for i, (a, b) in enumerate(zip(tokens1, tokens2)):
        if a == b:
            agreement[i] = 1.0
    return _clamp(float(np.dot(weights, agreement) / weights.sum()))


@lru_cache(maxsize=8192)
def extract_keywords(text: str, top_n: int = 8) -> Tuple[str, ...]:
    """First top_n distinct content words: length > 3, not a stop word, or whitelisted"""
    keywords: List[str] = []
    for token in tokenize(text):
        if token in keywords:
            continue
        if token in IMPORTANT_TERMS:
            keywords.append(token)
        elif len(token) > 3 and token not in STOP_WORDS and not token.isdigit():
            keywords.append(token)
        if len(keywords) >= top_n:
            break
    return tuple(keywords)


def keyword_overlap(text1: str, text2: str, top_n: int = 8) -> float:
    keywords1 = set(extract_keywords(text1, top_n))
    keywords2 = set(extract_keywords(text2, top_n))
    if not keywords1 and not keywords2:
        return 1.0 if text1 == text2 else 0.0
    return _clamp(_jaccard(keywords1, keywords2))


def _taxonomy_densities(tokens: List[str]) -> np.ndarray:
    if not tokens:
        return np.zeros(len(TAXONOMIES))
    token_count = len(tokens)
    densities = []
    for terms in TAXONOMIES.values():
        hits = sum(1 for token in tokens if token in terms)
        densities.append(hits / token_count)
    return np.array(densities)


def semantic_context_similarity(text1: str, text2: str) -> float:
    """Compare how densely each text uses each domain taxonomy; neutral 0.5 with no evidence"""
    if text1 and text1 == text2:
        return 1.0
    densities1 = _taxonomy_densities(tokenize(text1))
    densities2 = _taxonomy_densities(tokenize(text2))

    present = (densities1 > 0) | (densities2 > 0)
    if not present.any():
        return 0.5

    d1 = densities1[present]
    d2 = densities2[present]
    per_taxonomy = 1.0 - np.abs(d1 - d2) / np.maximum(d1, d2)
    return _clamp(float(per_taxonomy.mean()))


def structural_similarity(text1: str, text2: str) -> float:
    """Average of length ratio, word-count ratio, question-mark agreement and symbol-density ratio"""
    length_ratio = _ratio(len(text1), len(text2))
    word_ratio = _ratio(len(text1.split()), len(text2.split()))
    question_mark = 1.0 if ('?' in text1) == ('?' in text2) else 0.0

    density1 = len(SYMBOL_PATTERN.findall(text1)) / len(text1) if text1 else 0.0
    density2 = len(SYMBOL_PATTERN.findall(text2)) / len(text2) if text2 else 0.0
    symbol_ratio = _ratio(density1, density2)

    return _clamp(float(np.mean([length_ratio, word_ratio, question_mark, symbol_ratio])))


SIMILARITY_FUNCTIONS = {
    'character': character_similarity,
    'word_set': word_set_similarity,
    'positional': positional_similarity,
    'keyword': keyword_overlap,
    'semantic_context': semantic_context_similarity,
    'structural': structural_similarity,
}


def composite_similarity(text1: str, text2: str,
                         weights: Optional[Dict[str, float]] = None) -> float:
    """Weighted sum of the configured subset of similarity functions, clamped to [0, 1]"""
    weights = weights or DEFAULT_COMPOSITE_WEIGHTS
    names = [name for name, weight in weights.items() if weight > 0]
    if not names:
        return 0.0

    weight_vector = np.array([weights[name] for name in names], dtype=float)
    scores = np.array([SIMILARITY_FUNCTIONS[name](text1, text2) for name in names])
    return _clamp(float(np.dot(weight_vector, scores) / weight_vector.sum()))
