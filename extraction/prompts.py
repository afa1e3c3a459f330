"""Prompt building for per-row disease extraction."""

# ============================================================================
# System Prompts
# ============================================================================


DEFAULT_SYSTEM_PROMPT = """你是一个专业的医疗文本分析助手，专门从文本中识别和提取病种名称。

规则：
1. 仔细分析文本，识别其中提到的所有疾病、病症、病种名称
2. 只提取明确的病种名称，不要包含症状描述或治疗方式
3. 病种可以是通用疾病名称（如"高血压"、"糖尿病"）或特定病种（如"阿尔茨海默病"）
4. 如果文本中没有病种信息，返回"未识别到病种"
5. 使用标准医学术语

输出格式要求：
- 直接输出识别到的病种列表
- 格式：[病种1, 病种2, ...]
- 如果没有病种：未识别到病种
- 不要输出任何解释或其他文字
- 不要使用 markdown 格式"""


STRICT_SYSTEM_PROMPT = """你是一个严格的医疗术语提取专家，从文本中精确提取病种名称。

严格规则：
1. 只提取官方ICD编码中定义的疾病名称
2. 排除所有症状、体征、检查结果等非疾病描述
3. 排除疾病修饰词（如"急性"、"慢性"、"轻度"等）
4. 每个病种必须是独立的医学名词

输出格式：
- 直接输出疾病名称列表
- 格式：[疾病名称1, 疾病名称2]
- 无疾病：未识别到病种
- 不要输出其他内容"""


COMPREHENSIVE_SYSTEM_PROMPT = """你是一个全面的医疗信息提取助手，从文本中提取所有医疗相关信息。

提取范围：
1. 病种名称（包括通用名和别名）
2. 疾病类型（如"传染病"、"慢性病"）
3. 疾病状态（如"早期"、"晚期"）
4. 并发症和合并症

输出格式：
- 直接输出医疗信息列表
- 格式：[主要病种, 相关病种1, 相关病种2, 并发症1, ...]
- 无疾病：未识别到病种
- 不要输出其他内容"""


ICD_SYSTEM_PROMPT = """你是一个ICD编码专家，从文本中识别疾病并尽可能提供ICD编码。

规则：
1. 识别文本中的所有疾病名称
2. 尽可能提供对应的ICD-10编码
3. 格式：疾病名称(ICD编码)
4. 如果无法确定编码，只提供疾病名称

输出格式：
- 直接输出疾病和编码列表
- 格式：[疾病1(ICD-10), 疾病2(ICD-10), ...]
- 无疾病：未识别到病种
- 不要输出其他内容"""


# Named templates the client can pick instead of sending a full system prompt
PROMPT_TEMPLATES = {
    "default": DEFAULT_SYSTEM_PROMPT,
    "strict": STRICT_SYSTEM_PROMPT,
    "comprehensive": COMPREHENSIVE_SYSTEM_PROMPT,
    "icd": ICD_SYSTEM_PROMPT,
}


# ============================================================================
# Helper Functions
# ============================================================================


def resolve_system_prompt(system_prompt: str | None = None, template: str | None = None) -> str:
    """Pick the system prompt for a job.

    An explicit non-blank prompt wins, then a named template, then the default.

    Raises:
        ValueError: If the template name is unknown
    """
    if system_prompt and system_prompt.strip():
        return system_prompt
    if template:
        if template not in PROMPT_TEMPLATES:
            raise ValueError(
                f"Unknown prompt template: {template}. "
                f"Supported: {', '.join(PROMPT_TEMPLATES.keys())}"
            )
        return PROMPT_TEMPLATES[template]
    return DEFAULT_SYSTEM_PROMPT


def build_user_prompt(text: str, user_prompt: str | None = None) -> str:
    """Build the per-row user message, appending extra requirements if given."""
    prompt = f"请分析以下文本，提取其中的病种名称：\n\n文本：{text}"
    if user_prompt and user_prompt.strip():
        prompt += f"\n\n额外要求：{user_prompt}"
    return prompt


def build_messages(
    text: str,
    system_prompt: str | None = None,
    user_prompt: str | None = None,
) -> list[dict[str, str]]:
    """Chat messages (system + user) for one row."""
    return [
        {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
        {"role": "user", "content": build_user_prompt(text, user_prompt)},
    ]
