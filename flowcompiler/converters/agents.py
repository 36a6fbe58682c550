"""Agent and composition converters."""
import json

from flowcompiler.converters.library import LibraryConverter
from flowcompiler.errors import GraphValidationError
from flowcompiler.models.fragments import FragmentKind

DEFAULT_SYSTEM_MESSAGE = "You are a helpful assistant."


class ToolAgentConverter(LibraryConverter):
    """Tool-calling agent wrapped in an executor.

    Ports: ``model`` (single, required), ``tools`` (multi), ``memory``
    (single, optional).
    """

    type_name = "toolAgent"
    category = "agent"
    symbols = (
        "create_tool_calling_agent",
        "agent_executor",
        "chat_prompt_template",
        "tool_interface",
    )

    def convert(self, node, context):
        model = context.resolve_input(node, "model")
        tools = context.resolve_inputs(node, "tools")
        memory = context.resolve_input(node, "memory", required=False)

        fragments, names = self.import_symbols(node, context)
        formatter = context.formatter
        python = context.options.target_language == "python"
        referenced = self.reference_ids(model, memory, *tools)

        tools_variable = self.variable_name(node, context, suffix="tools")
        tool_list = formatter.array([tool.variable_name for tool in tools])
        if python:
            tools_source = formatter.declare(tools_variable, tool_list)
        else:
            tools_source = f"const {tools_variable}: {names['tool_interface']}[] = {tool_list};"
        tools_fragment = self.code_fragment(
            node, FragmentKind.INITIALIZATION, tools_source,
            suffix="tools", exports=tools_variable, depends_on=referenced, priority=90,
        )
        fragments.append(tools_fragment)

        messages = [["system", node.get_parameter("systemMessage", DEFAULT_SYSTEM_MESSAGE)]]
        if memory is not None:
            messages.append(["placeholder", "{chat_history}"])
        messages.append(["human", "{input}"])
        messages.append(["placeholder", "{agent_scratchpad}"])
        prompt_variable = self.variable_name(node, context, suffix="prompt")
        factory = "from_messages" if python else "fromMessages"
        prompt_expression = f"{names['chat_prompt_template']}.{factory}({formatter.literal(messages)})"
        prompt_fragment = self.code_fragment(
            node, FragmentKind.INITIALIZATION, formatter.declare(prompt_variable, prompt_expression),
            suffix="prompt", exports=prompt_variable, priority=91,
        )
        fragments.append(prompt_fragment)

        agent_variable = self.variable_name(node, context, suffix="agent")
        create = names["create_tool_calling_agent"]
        if python:
            agent_expression = f"{create}({model.variable_name}, {tools_variable}, {prompt_variable})"
        else:
            agent_expression = (
                f"{create}({{ llm: {model.variable_name}, tools: {tools_variable}, "
                f"prompt: {prompt_variable} }})"
            )
        agent_fragment = self.code_fragment(
            node, FragmentKind.INITIALIZATION, formatter.declare(agent_variable, agent_expression),
            suffix="agent", exports=agent_variable, priority=95,
            depends_on=referenced | {tools_fragment.id, prompt_fragment.id},
        )
        fragments.append(agent_fragment)

        kwargs = {"agent": agent_variable, "tools": tools_variable}
        if memory is not None:
            kwargs["memory"] = memory.variable_name
        kwargs.update(self.render_parameters(node, context, {
            "maxIterations": ("maxIterations", "max_iterations"),
            "verbose": ("verbose", "verbose"),
        }))
        variable = self.variable_name(node, context)
        expression = formatter.construct(names["agent_executor"], kwargs)
        fragments.append(self.initialization(
            node, context, variable, expression,
            depends_on=referenced | {agent_fragment.id, tools_fragment.id},
        ))
        context.register_output(variable, category=self.category)
        return fragments


class SubflowConverter(LibraryConverter):
    """Runs other nodes in sequence.

    The steps are listed in the ``steps`` parameter (a JSON list of node
    ids) rather than through ports or edges, so every step is declared as
    an explicit dependency.
    """

    type_name = "subflow"
    category = "chain"
    symbols = ("runnable_sequence",)

    def parse_steps(self, node) -> list[str]:
        raw = node.get_parameter("steps", [])
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise GraphValidationError(
                    [f"node '{node.id}': 'steps' is not valid JSON ({exc.msg})"]
                ) from exc
        if not isinstance(raw, list) or not raw or not all(
            isinstance(step, str) and step for step in raw
        ):
            raise GraphValidationError(
                [f"node '{node.id}': 'steps' must be a non-empty list of node ids"]
            )
        return raw

    def convert(self, node, context):
        steps = self.parse_steps(node)
        references = []
        for step in steps:
            context.add_dependency(step)
            references.append(context.resolve_reference(step, port="steps"))

        variable = self.variable_name(node, context)
        step_names = [reference.variable_name for reference in references]
        if len(step_names) == 1:
            fragments = []
            expression = step_names[0]
        else:
            fragments, names = self.import_symbols(node, context)
            sequence = names["runnable_sequence"]
            if context.options.target_language == "python":
                expression = f"{sequence}({', '.join(step_names)})"
            else:
                expression = f"{sequence}.from({context.formatter.array(step_names)})"

        fragments.append(self.initialization(
            node, context, variable, expression,
            depends_on=self.reference_ids(*references),
        ))
        context.register_output(variable, category=self.category)
        return fragments
