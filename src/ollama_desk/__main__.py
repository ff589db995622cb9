"""ollama-desk 入口点。

支持: python -m ollama_desk
"""

from .app import main

if __name__ == "__main__":
    main()
