from errors import LexerError


KEYWORDS = {
    "script": "SCRIPT",
    "raw": "RAW",
    "rawglobal": "RAWGLOBAL",
    "text": "TEXT",
    "movement": "MOVEMENT",
    "mart": "MART",
    "mapscripts": "MAPSCRIPTS",
    "if": "IF",
    "elif": "ELIF",
    "else": "ELSE",
    "while": "WHILE",
    "do": "DO",
    "switch": "SWITCH",
    "case": "CASE",
    "default": "DEFAULT",
    "break": "BREAK",
    "continue": "CONTINUE",
    "flag": "FLAG",
    "var": "VAR",
    "TRUE": "TRUE",
    "FALSE": "FALSE",
    "local": "LOCAL",
    "global": "GLOBAL",
}

# two-character operators are matched before the single-character ones
OPERATORS = {
    "==": "EQ",
    "!=": "NEQ",
    "<=": "LTE",
    ">=": "GTE",
    "&&": "AND",
    "||": "OR",
    "<": "LT",
    ">": "GT",
    "!": "NOT",
    "*": "MUL",
    "+": "PLUS",
    "-": "MINUS",
    "/": "SLASH",
    "&": "AMP",
    "|": "PIPE",
    "(": "LPAREN",
    ")": "RPAREN",
    "{": "LBRACE",
    "}": "RBRACE",
    "[": "LBRACKET",
    "]": "RBRACKET",
    ",": "COMMA",
    ":": "COLON",
    ";": "SEMICOLON",
}


class Token:
    def __init__(self, type, value=None, line=1, column=1, prefix=None):
        self.type = type
        self.value = value
        self.line = line
        self.column = column
        # string-kind for prefixed strings like braille"..."
        self.prefix = prefix

    def __repr__(self):
        if self.value is not None:
            return f"{self.type}({self.value})"
        return f"{self.type}"


class Lexer:
    def __init__(self, text):
        self.text = text
        self.pos = 0
        self.current_char = text[0] if text else None
        self.line = 1
        self.column = 1

    def advance(self, count=1):
        for _ in range(count):
            if self.current_char == "\n":
                self.line, self.column = self.line + 1, 1
            else:
                self.column += 1
            self.pos += 1
            self.current_char = self.text[self.pos] if self.pos < len(self.text) else None

    def peek(self, offset=1):
        # "" past the end of input
        return self.text[self.pos + offset:self.pos + offset + 1]

    def skip_whitespace(self):
        while self.current_char and self.current_char in " \t\r\n":
            self.advance()

    def at_comment(self):
        return self.current_char == "#" or (self.current_char == "/" and self.peek() == "/")

    def skip_comment(self):
        # up to, not including, the newline
        end = self.text.find("\n", self.pos)
        self.advance((len(self.text) if end == -1 else end) - self.pos)

    def read_identifier(self):
        start_line, start_col = self.line, self.column
        result = ""
        while self.current_char and (self.current_char.isalnum() or self.current_char in "_."):
            result += self.current_char
            self.advance()

        # prefixed string: braille"..."
        if self.current_char == '"':
            return self.read_string(prefix=result, start=(start_line, start_col))

        if result in KEYWORDS:
            return Token(KEYWORDS[result], result, line=start_line, column=start_col)
        return Token("IDENT", result, line=start_line, column=start_col)

    def read_number(self):
        start_line, start_col = self.line, self.column
        result = ""
        # hex literals and suffixed values stay one token
        while self.current_char and (self.current_char.isalnum() or self.current_char == "_"):
            result += self.current_char
            self.advance()
        return Token("INT", result, line=start_line, column=start_col)

    def read_string(self, prefix=None, start=None):
        start_line, start_col = start if start is not None else (self.line, self.column)
        self.advance()  # skip opening quote
        result = ""

        while self.current_char and self.current_char != '"':
            if self.current_char == "\\":
                # escapes are kept verbatim for the engine's string directive
                result += self.current_char
                self.advance()
                if self.current_char is None:
                    break
                result += self.current_char
                self.advance()
                continue

            if self.current_char == "\n":
                # a line break inside a string, with its indentation, becomes one space
                result = result.rstrip(" \t\r")
                self.skip_whitespace()
                if result:
                    result += " "
                continue

            result += self.current_char
            self.advance()

        if self.current_char != '"':
            raise LexerError("Unclosed string", start_line, start_col)

        self.advance()  # skip closing quote
        return Token("STRING", result, line=start_line, column=start_col, prefix=prefix)

    def read_raw_string(self):
        start_line, start_col = self.line, self.column
        self.advance()  # skip opening backtick
        result = ""
        while self.current_char is not None and self.current_char != "`":
            result += self.current_char
            self.advance()

        if self.current_char != "`":
            raise LexerError("Unclosed raw string", start_line, start_col)

        self.advance()
        return Token("RAWSTRING", result, line=start_line, column=start_col)

    def get_next_token(self):
        while self.current_char:

            if self.current_char in " \t\r\n":
                self.skip_whitespace()
                continue

            if self.at_comment():
                self.skip_comment()
                continue

            # identifiers / keywords
            if self.current_char.isalpha() or self.current_char == "_":
                return self.read_identifier()

            if self.current_char.isdigit():
                return self.read_number()

            if self.current_char == '"':
                return self.read_string()

            if self.current_char == "`":
                return self.read_raw_string()

            start_line, start_col = self.line, self.column
            pair = self.current_char + self.peek()
            if pair in OPERATORS:
                self.advance(2)
                return Token(OPERATORS[pair], pair, line=start_line, column=start_col)
            if self.current_char in OPERATORS:
                ch = self.current_char
                self.advance()
                return Token(OPERATORS[ch], ch, line=start_line, column=start_col)

            raise LexerError(f"Unknown character: {self.current_char}", self.line, self.column)

        return Token("EOF", "", line=self.line, column=self.column)
