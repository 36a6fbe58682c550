"""Tool converters."""
from flowcompiler.converters.library import LibraryConverter
from flowcompiler.models.fragments import FragmentKind


class CalculatorConverter(LibraryConverter):
    """Math expression tool.

    TypeScript uses the community ``Calculator`` tool. Python has no
    drop-in equivalent, so a small ``@tool`` function backed by numexpr
    is declared instead.
    """

    type_name = "calculator"
    category = "tool"
    symbols = ("calculator", "numexpr")

    def convert(self, node, context):
        fragments, names = self.import_symbols(node, context)
        variable = self.variable_name(node, context)

        if context.options.target_language == "python":
            source = (
                f"@{names['calculator']}\n"
                f"def {variable}(expression: str) -> str:\n"
                f'    """Evaluate a mathematical expression."""\n'
                f"    return str(numexpr.evaluate(expression).item())"
            )
            fragments.append(self.code_fragment(
                node, FragmentKind.DECLARATION, source, suffix="decl", exports=variable,
            ))
        else:
            expression = context.formatter.construct(names["calculator"], {})
            fragments.append(self.initialization(node, context, variable, expression))

        context.register_output(variable, category=self.category)
        return fragments


class SerpAPIConverter(LibraryConverter):
    """Web search through SerpAPI."""

    type_name = "serpAPI"
    category = "tool"
    symbols = ("serpapi", "tool")
    api_key_env = "SERPAPI_API_KEY"

    def convert(self, node, context):
        fragments, names = self.import_symbols(node, context)
        fragments.extend(self.env_fragments(node, [self.api_key_env], context))
        formatter = context.formatter
        api_key = formatter.env(self.api_key_env)

        if context.options.target_language == "python":
            wrapper = f"{names['serpapi']}(serpapi_api_key={api_key})"
            expression = formatter.construct(names["tool"], {
                "name": formatter.literal(node.get_parameter("name", "search")),
                "description": formatter.literal(node.get_parameter(
                    "description", "Search the web for current information.",
                )),
                "func": f"{wrapper}.run",
            })
        else:
            expression = f"new {names['serpapi']}({api_key})"

        variable = self.variable_name(node, context)
        fragments.append(self.initialization(
            node, context, variable, expression, env=[self.api_key_env],
        ))
        context.register_output(variable, category=self.category)
        return fragments
