class CompileError(Exception):
    def __init__(self, message, line=None, column=None):
        self.message = message
        self.line = line
        self.column = column
        super().__init__(self.__str__())

    def __str__(self):
        if self.line is None:
            return self.message
        if self.column is None:
            return f"{self.message} at line {self.line}"
        return f"{self.message} at line {self.line}, col {self.column}"

    @classmethod
    def at(cls, message, tok):
        return cls(message, tok.line, tok.column)


class LexerError(CompileError):
    pass


class ScriptSyntaxError(CompileError):
    pass


class UnterminatedBlock(ScriptSyntaxError):
    pass


class UnterminatedArgumentList(ScriptSyntaxError):
    pass


class DuplicateDefaultCase(ScriptSyntaxError):
    pass


class InvalidConditionOperator(ScriptSyntaxError):
    pass


class InvalidFlagComparisonValue(ScriptSyntaxError):
    pass


# scope resolution
class UnboundBreak(CompileError):
    pass


class UnboundContinue(CompileError):
    pass


# emission
class DuplicateTextName(CompileError):
    pass


class UnresolvedLabel(CompileError):
    pass


class DuplicateLabel(CompileError):
    pass
