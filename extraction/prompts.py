EXTRACTION_INSTRUCTION = """
You are an expert at analysing supplier price lists. Analyse the {document_kind} below
and extract EVERY product it lists.

Your goal:
- Extract ONLY explicitly present information
- NEVER guess, infer or invent products, codes or prices
- If a field is not present, use an empty string ("") or null

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
FIELDS PER PRODUCT
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
- code: supplier product code / SKU, or ""
- name: full product name exactly as written (keep brand, variety and size words)
- packaging: presentation or size (e.g. "500GR", "CAJA 12X1L"), or ""
- price: unit price as a decimal number
- unit: unit of measure (KG, UND, CAJA, ...), or ""
- brand: brand name, or ""
- confidence: 0-100, how clearly the row could be read

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
RULES
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
- Identify the columns for code, name, price, packaging, unit and brand yourself
- Every table row that represents a product is a separate product
- Skip headers, section titles, totals and notes
- Normalize prices to plain decimals: remove currency symbols, spaces and
  thousands separators; a decimal comma becomes a decimal point
- For images read all visible text carefully; for PDFs read every table and list

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
OUTPUT FORMAT (EXACT — NO EXTRA KEYS)
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
Respond ONLY with a valid JSON array, no markdown and no explanations:
[
  {{
    "code": "string",
    "name": "string",
    "packaging": "string",
    "price": number,
    "unit": "string",
    "brand": "string",
    "confidence": number
  }}
]
""".strip()


PAIR_SIMILARITY_PROMPT = """
Compare these two products and decide whether they are the same product
(names may be written slightly differently between suppliers).

Product 1: {first}
Product 2: {second}

Reply ONLY with a number between 0 and 1: the probability that both are the same
product (1 = definitely the same, 0 = completely different).
""".strip()


def _document_kind(file_type: str) -> str:
    if file_type in {"png", "jpg", "jpeg", "webp", "heic", "heif"}:
        return "IMAGE"
    return file_type.upper()


def build_extraction_prompt(file_type: str, raw_data: str | None = None) -> str:
    """Extraction instruction; tabular documents are appended as text, media travel alongside."""
    prompt = EXTRACTION_INSTRUCTION.format(document_kind=_document_kind(file_type))
    if raw_data is None:
        return prompt

    return f"""
{prompt}

{file_type.upper()} CONTENT (one JSON array per row):
{raw_data}
""".strip()


def describe_product(name: str, packaging: str | None = None) -> str:
    return f"{name} {packaging or ''}".strip()


def build_pair_prompt(first: str, second: str) -> str:
    return PAIR_SIMILARITY_PROMPT.format(first=first, second=second)
