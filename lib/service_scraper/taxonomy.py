"""Service taxonomy and indicator phrases for clinic websites.

Each canonical category maps to the phrases that signal it. Tables are
read-only and patterns are compiled once at import.
"""

import re
from types import MappingProxyType
from typing import Dict, Pattern, Tuple


HORMONE_THERAPY = "Hormone Therapy"

TARGET_SERVICES: "MappingProxyType[str, Tuple[str, ...]]" = MappingProxyType({
    # Hormones
    HORMONE_THERAPY: (
        "testosterone replacement therapy", "trt", "low t treatment", "testosterone therapy",
        "androgen therapy", "hormone replacement", "hrt for men",
    ),
    "HGH": ("human growth hormone", "hgh therapy", "growth hormone", "somatropin", "sermorelin"),
    "Peptide Therapy": (
        "peptide therapy", "peptides", "bpc-157", "tb-500", "ipamorelin", "cjc-1295", "mk-677",
    ),

    # Sexual health
    "ED Treatment": (
        "erectile dysfunction", "ed treatment", "impotence", "sexual dysfunction", "viagra",
        "cialis", "trimix", "p-shot", "priapus shot",
    ),
    "Premature Ejaculation": ("premature ejaculation", "pe treatment", "sexual performance"),
    "Peyronie's Disease": ("peyronie's disease", "peyronies disease", "penile curvature", "xiaflex"),

    # Weight and metabolic
    "Weight Loss": (
        "weight loss", "medical weight loss", "semaglutide", "ozempic", "wegovy", "tirzepatide",
        "mounjaro", "phentermine", "fat loss", "body composition",
    ),
    "B12 Injections": ("b12 shots", "b12 injections", "vitamin b12", "methylcobalamin"),
    "Lipotropic Injections": ("lipotropic", "mic injections", "fat burning injections", "lipo shots"),

    # Hair and aesthetics
    "Hair Restoration": (
        "hair restoration", "hair loss", "finasteride", "propecia", "minoxidil", "rogaine",
        "prp hair", "hair transplant", "fue", "fut",
    ),
    "PRP Therapy": ("prp", "platelet rich plasma", "prp therapy", "prp injections"),
    "Aesthetics": ("botox", "dermal fillers", "juvederm", "restylane", "sculptra", "kybella"),

    # Wellness
    "IV Therapy": ("iv therapy", "iv drip", "iv hydration", "myers cocktail", "glutathione"),
    "Cryotherapy": ("cryotherapy", "cold therapy", "cryo", "whole body cryotherapy"),
    "Red Light Therapy": ("red light therapy", "photobiomodulation", "infrared therapy", "lllt"),

    # Specialized treatments
    "Acoustic Wave": ("acoustic wave", "gainswave", "shockwave therapy", "eswt"),
    "Ozone Therapy": ("ozone therapy", "ozone treatment", "o3 therapy"),
    "Stem Cell Therapy": ("stem cell", "regenerative medicine", "exosomes", "umbilical cord"),

    # Diagnostics
    "Hormone Testing": ("hormone testing", "blood work", "lab testing", "comprehensive panel", "dutch test"),
    "Genetic Testing": ("genetic testing", "dna testing", "pharmacogenomics"),
    "Food Sensitivity": ("food sensitivity", "food allergy testing", "elimination diet"),

    # Mental health
    "TMS Therapy": ("tms", "transcranial magnetic stimulation", "depression treatment"),
    "Ketamine Therapy": ("ketamine", "ketamine infusion", "spravato"),
    "NAD+ Therapy": ("nad+", "nad therapy", "nicotinamide adenine dinucleotide"),

    # Pain management
    "Joint Injections": ("joint injections", "cortisone", "hyaluronic acid", "viscosupplementation"),
    "Trigger Point": ("trigger point", "dry needling", "myofascial release"),
})

SERVICE_PAGE_INDICATORS: Tuple[str, ...] = (
    "services", "treatments", "what we do", "what we offer", "our services",
    "medical services", "treatment options", "therapies", "procedures",
    "mens health services", "clinic services", "offerings",
)

PRICING_INDICATORS: Tuple[str, ...] = (
    "starting at", "per session", "per treatment", "pricing", "cost",
    "investment", "package", "membership", "consultation fee",
)

SPECIALTY_INDICATORS: "MappingProxyType[str, Tuple[str, ...]]" = MappingProxyType({
    "Anti-Aging": ("anti-aging", "age management", "longevity"),
    "Sports Medicine": ("sports medicine", "athletic performance", "sports performance"),
    "Executive Health": ("executive health", "executive wellness", "vip health"),
    "Functional Medicine": ("functional medicine", "integrative medicine", "holistic"),
    "Regenerative Medicine": ("regenerative medicine", "stem cell", "prp"),
    "Sexual Health": ("sexual health", "mens sexual health", "sexual wellness"),
    "Metabolic Health": ("metabolic health", "metabolic optimization", "metabolism"),
})

# Words that make a keyword hit read like an offered service
SERVICE_SUFFIXES: Tuple[str, ...] = ("treatment", "therapy", "program")


def keyword_pattern(phrase: str) -> Pattern[str]:
    """Whole-phrase pattern: 'fut' must not match inside 'future'."""
    return re.compile(r"(?<![a-z0-9])" + re.escape(phrase) + r"(?![a-z0-9])")


KEYWORD_PATTERNS: Dict[str, Tuple[Tuple[str, Pattern[str]], ...]] = {
    category: tuple((phrase, keyword_pattern(phrase)) for phrase in phrases)
    for category, phrases in TARGET_SERVICES.items()
}
