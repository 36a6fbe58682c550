"""Conversation memory converters."""
from flowcompiler.converters.library import LibraryConverter


class BufferMemoryConverter(LibraryConverter):
    type_name = "bufferMemory"
    category = "memory"
    symbols = ("buffer_memory",)
    symbol_key = "buffer_memory"
    parameters = {
        "memoryKey": ("memoryKey", "memory_key"),
        "inputKey": ("inputKey", "input_key"),
        "outputKey": ("outputKey", "output_key"),
    }

    def convert(self, node, context):
        fragments, names = self.import_symbols(node, context)
        kwargs = self.render_parameters(node, context, self.parameters)
        python = context.options.target_language == "python"
        kwargs["return_messages" if python else "returnMessages"] = context.formatter.literal(True)

        variable = self.variable_name(node, context)
        expression = context.formatter.construct(names[self.symbol_key], kwargs)
        fragments.append(self.initialization(node, context, variable, expression))
        context.register_output(variable, category=self.category)
        return fragments


class BufferWindowMemoryConverter(BufferMemoryConverter):
    """Buffer memory keeping only the last ``k`` exchanges."""

    type_name = "bufferWindowMemory"
    symbols = ("buffer_window_memory",)
    symbol_key = "buffer_window_memory"
    parameters = {
        **BufferMemoryConverter.parameters,
        "k": ("k", "k"),
    }

    def can_handle(self, node):
        k = node.get_parameter("k")
        if k is None:
            return True
        try:
            return int(k) > 0
        except (TypeError, ValueError):
            return False

    def render_parameters(self, node, context, mapping):
        kwargs = super().render_parameters(node, context, mapping)
        if "k" in kwargs:
            kwargs["k"] = context.formatter.literal(int(node.get_parameter("k")))
        return kwargs
