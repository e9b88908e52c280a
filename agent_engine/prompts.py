DEFAULT_SYSTEM_PROMPT = (
    "You are a capable assistant that solves tasks step by step. "
    "Use a tool when it helps; otherwise answer directly."
)

FORMAT_INSTRUCTIONS = """To use a tool, reply with a short thought followed by exactly one JSON object:
{"tool": "<tool name>", "params": {<parameters>}, "reason": "<why this tool>"}

Rules:
1. Use at most one tool per reply.
2. "params" must be a JSON object matching the tool's parameters.
3. If no tool is needed, reply with the final answer as plain text and no JSON object."""


def build_system_prompt(tool_listing: str, system_prompt: str = None) -> str:
    """Compose the system message: role, available tools, reply format."""
    return (
        f"{system_prompt or DEFAULT_SYSTEM_PROMPT}\n\n"
        f"Available tools:\n{tool_listing}\n\n"
        f"{FORMAT_INSTRUCTIONS}"
    )


def tool_result_message(observation: str) -> str:
    return f"tool result: {observation}"
