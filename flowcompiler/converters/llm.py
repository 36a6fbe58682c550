"""Chat and completion model converters."""
from flowcompiler.converters.library import LibraryConverter


class ChatModelConverter(LibraryConverter):
    """Base for model nodes: one constructor call, API key from the environment."""

    category = "llm"
    symbol_key = ""
    api_key_env = ""
    # Constructor option name for the API key, per language
    api_key_option = ("apiKey", "api_key")
    parameters = {
        "modelName": ("model", "model"),
        "temperature": ("temperature", "temperature"),
        "maxTokens": ("maxTokens", "max_tokens"),
        "topP": ("topP", "top_p"),
        "timeout": ("timeout", "timeout"),
        "streaming": ("streaming", "streaming"),
    }

    @property
    def symbols(self):
        return (self.symbol_key,)

    def convert(self, node, context):
        fragments, names = self.import_symbols(node, context)
        fragments.extend(self.env_fragments(node, [self.api_key_env], context))

        kwargs = self.render_parameters(node, context, self.parameters)
        python = context.options.target_language == "python"
        kwargs[self.api_key_option[1] if python else self.api_key_option[0]] = (
            context.formatter.env(self.api_key_env)
        )

        variable = self.variable_name(node, context)
        expression = context.formatter.construct(names[self.symbol_key], kwargs)
        fragments.append(self.initialization(
            node, context, variable, expression, env=[self.api_key_env],
        ))
        context.register_output(variable, category=self.category)
        return fragments


class ChatOpenAIConverter(ChatModelConverter):
    type_name = "chatOpenAI"
    symbol_key = "chat_openai"
    api_key_env = "OPENAI_API_KEY"


class ChatAnthropicConverter(ChatModelConverter):
    type_name = "chatAnthropic"
    symbol_key = "chat_anthropic"
    api_key_env = "ANTHROPIC_API_KEY"


class OpenAIConverter(ChatModelConverter):
    """Legacy completion model, superseded by chat models."""

    type_name = "openAI"
    symbol_key = "openai_llm"
    api_key_env = "OPENAI_API_KEY"
    deprecated = True
    replacement_type = "chatOpenAI"
