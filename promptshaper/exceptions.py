from typing import List, Optional


class PromptShaperError(Exception):
    # base exception for all application-specific errors.
    pass

class ConfigError(PromptShaperError):
    # errors related to configuration.
    pass

class TemplateSyntaxError(PromptShaperError):
    # grammar violation; carries the position and the expected-token set.
    def __init__(
        self,
        message: str,
        line: int = 1,
        column: int = 1,
        offset: int = 0,
        expected: Optional[List[str]] = None,
        found: Optional[str] = None,
    ):
        super().__init__(message)
        self.line = line
        self.column = column
        self.offset = offset
        self.expected = expected or []
        self.found = found

class MismatchedTagError(TemplateSyntaxError):
    # an opening `{name}` tag closed by a `{/other}` tag.
    def __init__(self, open_name: str, close_name: str, **position):
        super().__init__(f"Mismatched variable tags: {{{open_name}}} ... {{/{close_name}}}", **position)
        self.open_name = open_name
        self.close_name = close_name

class BindingError(PromptShaperError):
    # errors while binding names or parameters.
    pass

class VariableConflictError(BindingError):
    # redefinition of a name, or a definition shadowing a function.
    def __init__(self, name: str, with_function: bool = False):
        if with_function:
            message = f"Variable name conflicts with function: `{name}`"
        else:
            message = f"Variable name conflict: `{name}`"
        super().__init__(message)
        self.name = name

class MissingParameterError(BindingError):
    def __init__(self, variable_name: str, param_name: str):
        super().__init__(f"Required param for `{variable_name}` not found: `{param_name}`")
        self.variable_name = variable_name
        self.param_name = param_name

class EvaluationError(PromptShaperError):
    # errors raised while evaluating expressions or calling functions.
    pass

class DivisionByZeroError(EvaluationError):
    def __init__(self, message: str = "Division by zero"):
        super().__init__(message)

class FunctionCallError(EvaluationError):
    # a built-in function was invoked with bad arguments.
    pass

class FunctionRegistryError(PromptShaperError):
    # errors from registering or unregistering functions.
    pass

class LoaderError(PromptShaperError):
    # errors while loading files, directories or images.
    pass

class OutputError(PromptShaperError):
    # errors during output operations.
    pass

class TokenizerError(PromptShaperError):
    # errors from the tokenizer.
    pass
