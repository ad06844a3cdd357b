# src/listing_notes/llm/prompts.py

from __future__ import annotations

from typing import Any

EXTRACTION_PROMPT = """
你是一个专业的房地产数据助手。
请分析提供的输入（文本、图片或音频），提取房源关键信息。

规则：
1. 输入可能包含 **多个** 房源信息，请务必将它们全部分开提取。
2. 如果缺少某个字段，请使用合理的默认值（例如空字符串或0）。
3. rentOrSale 字段必须严格对应 "Rent" (出租/租房) 或 "Sale" (出售/卖房)。
4. 如果是中文输入，提取的内容（如朝向、户型）请保持中文。
5. 如果提供了音频，请先在内部转录音频内容，然后提取数据。
6. 只输出 JSON，格式为 {"listings": [...]}。
""".strip()


def build_prompt(text: str) -> str:
    if text:
        return f"{EXTRACTION_PROMPT}\n\n用户描述: {text}"
    return EXTRACTION_PROMPT


LISTING_ITEM_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "communityName": {
            "type": "string",
            "description": "Name of the residential community (e.g., 天通苑, 阳光花园)",
        },
        "price": {
            "type": "number",
            "description": "Price value only. If text says '5000/month', put 5000.",
        },
        "rentOrSale": {
            "type": "string",
            "enum": ["Rent", "Sale"],
            "description": "Rent (出租) or Sale (出售)",
        },
        "layout": {"type": "string", "description": "Layout description (e.g., 2室1厅, 3房2卫)"},
        "area": {"type": "number", "description": "Size of the property in square meters"},
        "floor": {"type": "string", "description": "Floor level (e.g., 中楼层, 5层)"},
        "orientation": {"type": "string", "description": "Facing direction (e.g., 南, 南北通透)"},
        "contactName": {"type": "string", "description": "Contact person name (e.g., 王先生)"},
        "contactPhone": {"type": "string", "description": "Phone number extracted"},
        "additionalNotes": {"type": "string", "description": "Any other details in Chinese"},
    },
    "required": ["communityName", "rentOrSale"],
}

LISTINGS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "listings": {"type": "array", "items": LISTING_ITEM_SCHEMA},
    },
    "required": ["listings"],
}

RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "property_listings",
        "schema": LISTINGS_SCHEMA,
    },
}
