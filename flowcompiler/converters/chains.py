"""Prompt and chain converters."""
from flowcompiler.converters.library import LibraryConverter
from flowcompiler.models.fragments import FragmentKind

DEFAULT_TEMPLATE = "{input}"


class PromptTemplateConverter(LibraryConverter):
    """Prompt template: the template text is declared, then parsed."""

    type_name = "promptTemplate"
    category = "prompt"
    symbols = ("prompt_template",)

    def convert(self, node, context):
        fragments, names = self.import_symbols(node, context)
        formatter = context.formatter
        variable = self.variable_name(node, context)
        template_variable = self.variable_name(node, context, suffix="template")

        template = node.get_parameter("template", DEFAULT_TEMPLATE)
        declaration = self.code_fragment(
            node,
            FragmentKind.DECLARATION,
            formatter.declare(template_variable, formatter.literal(template)),
            suffix="template",
            exports=template_variable,
        )
        fragments.append(declaration)

        factory = "from_template" if context.options.target_language == "python" else "fromTemplate"
        expression = f"{names['prompt_template']}.{factory}({template_variable})"
        fragments.append(self.initialization(
            node, context, variable, expression, depends_on=[declaration.id],
        ))
        context.register_output(variable, category=self.category)
        return fragments


class LLMChainConverter(LibraryConverter):
    type_name = "llmChain"
    category = "chain"
    symbols = ("llm_chain",)

    def convert(self, node, context):
        model = context.resolve_input(node, "model")
        prompt = context.resolve_input(node, "prompt")
        fragments, names = self.import_symbols(node, context)

        kwargs = {"llm": model.variable_name, "prompt": prompt.variable_name}
        output_key = node.get_parameter("outputKey")
        if output_key:
            key = "output_key" if context.options.target_language == "python" else "outputKey"
            kwargs[key] = context.formatter.literal(output_key)

        variable = self.variable_name(node, context)
        expression = context.formatter.construct(names["llm_chain"], kwargs)
        fragments.append(self.initialization(
            node, context, variable, expression,
            depends_on=self.reference_ids(model, prompt),
        ))
        context.register_output(variable, category=self.category)
        return fragments


class ConversationChainConverter(LibraryConverter):
    """Chat chain with optional memory."""

    type_name = "conversationChain"
    category = "chain"
    symbols = ("conversation_chain",)

    def convert(self, node, context):
        model = context.resolve_input(node, "model")
        memory = context.resolve_input(node, "memory", required=False)
        fragments, names = self.import_symbols(node, context)

        kwargs = {"llm": model.variable_name}
        if memory is not None:
            kwargs["memory"] = memory.variable_name

        variable = self.variable_name(node, context)
        expression = context.formatter.construct(names["conversation_chain"], kwargs)
        fragments.append(self.initialization(
            node, context, variable, expression,
            depends_on=self.reference_ids(model, memory),
        ))
        context.register_output(variable, category=self.category)
        return fragments
