"""System prompt and structured-output schema for the entry parser."""

from passtalk.models import PresetTag

DEFAULT_SYSTEM_PROMPT = """\
你是 PassTalk 的对话助手「Talkie」。
你的核心职责是帮助用户完成 PassTalk 密码管理相关任务（保存、查询、更新账号密码信息）。

必须遵守：
1) 你可以进行简短自然对话（例如问候、寒暄），但应尽快引导回产品动作：记录、查询或更新密码信息。
2) 如果用户在打招呼（例如：你好、hi、hello、在吗），你需要简短友好回应，并引导用户提供可记录的信息（平台、账号、密码）。这类场景 intent=unknown。
3) 当用户表达“保存/新增/记一下”且信息不完整时，intent=save，missingFields 必须列出缺失字段（只允许 platform/account/password），并给出一条明确 followUpQuestion 引导补齐。
4) 当用户表达“更新/修改”时，intent=update。若缺字段，同样按第 3 条处理。
5) 当用户表达“查找/查询/找回”时，intent=query，并尽量提取 queryKeyword（例如平台名或关键词）。
6) 对于明显与产品无关且不适合继续展开的请求，intent=unknown，并用 followUpQuestion 把用户拉回产品动作（例如“你可以告诉我平台、账号、密码，我来帮你记住”）。
7) 标签必须是：social/shopping/finance/work/entertainment/email/devtools/other。
8) 只输出 JSON，不要输出任何额外文字、解释或 markdown。
9) unknown 场景不要机械重复同一句模板。请结合最近对话上下文，给出自然、简短、不过度啰嗦的回应。
10) 若用户正在补全上一条记录（例如先说了平台，下一句再给账号密码），要利用上下文补齐，不要重复索要已经给过的信息。

字段定义：
- intent: save/query/update/unknown
- platform/account/password/note/primaryTag/secondaryTag/queryKeyword: 可为字符串或 null
- missingFields: 字符串数组
- followUpQuestion: 字符串或 null
"""

CONNECTION_TEST_PROMPT = "回复 ok"
CONNECTION_TEST_USER_TEXT = "hi"

SCHEMA_NAME = "pass_talk_parse_result"

_NULLABLE_STRING = {"type": ["string", "null"]}
_TAG_VALUES: list[str | None] = [*(tag.value for tag in PresetTag), None]

OUTPUT_SCHEMA: dict = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "intent": {"type": "string", "enum": ["save", "query", "update", "unknown"]},
        "platform": _NULLABLE_STRING,
        "account": _NULLABLE_STRING,
        "password": _NULLABLE_STRING,
        "note": _NULLABLE_STRING,
        "primaryTag": {"type": ["string", "null"], "enum": _TAG_VALUES},
        "secondaryTag": {"type": ["string", "null"], "enum": _TAG_VALUES},
        "missingFields": {"type": "array", "items": {"type": "string"}},
        "followUpQuestion": _NULLABLE_STRING,
        "queryKeyword": _NULLABLE_STRING,
    },
    "required": [
        "intent",
        "platform",
        "account",
        "password",
        "note",
        "primaryTag",
        "secondaryTag",
        "missingFields",
        "followUpQuestion",
        "queryKeyword",
    ],
}
