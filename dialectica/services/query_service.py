"""Query standardization and broadening via the language service."""

import logging

from dialectica.errors import ConfigurationError
from dialectica.services.gemini_service import LanguageService, ParseFailure
from dialectica.services.schemas import BroadenQueryResponse, StandardizeQueryResponse
from dialectica.utils.text import strip_quotes, strip_trailing_operator

logger = logging.getLogger(__name__)

STANDARDIZE_INSTRUCTION = """You are an expert academic search strategist. Your task is to convert a user's natural language research question into a robust, keyword-based search query suitable for academic databases, and return it within a JSON object.

Follow these steps to construct the query:
1.  **Identify Core Concepts:** Break down the user's question into its essential conceptual parts.
2.  **Expand with Synonyms:** For each core concept, generate 2-3 relevant synonyms or closely related terms.
3.  **Combine with Operators:**
    *   Group synonyms for a single concept together using the OR operator and parentheses. For example: ("hebrew bible" OR "tanakh" OR "old testament").
    *   Connect the different concept groups with the AND operator.
    *   Use quotation marks "" for exact phrases of two or more words.
4.  **Ensure Correctness:** The final query must be syntactically correct, with balanced parentheses and quotes, and no trailing operators.

**Example Transformation:**
*   **User Question:** "hellenistic influence on hebrew bible"
*   **Core Concept 1:** Hellenistic influence. Synonyms: hellenism.
*   **Core Concept 2:** Hebrew Bible. Synonyms: tanakh, old testament.
*   **Resulting Query:** ("hellenistic influence" OR "hellenism") AND ("hebrew bible" OR "tanakh" OR "old testament")

Your entire output must be a single JSON object that strictly adheres to the provided schema, containing the final query."""

BROADEN_INSTRUCTION = (
    "You are an expert academic search strategist. A user's search query failed "
    "to return any results. Your task is to broaden the query to increase the "
    "chances of finding relevant papers. Simplify the query by removing very "
    "specific terms, replacing jargon with more common keywords, or reducing the "
    "number of AND operators. The goal is a query that is more general but still "
    'on-topic. The output must be a single JSON object with a single key "broadenedQuery".'
)


class QueryRefiner:
    """Turns questions into database queries; never fails a search."""

    def __init__(self, llm: LanguageService):
        self.llm = llm

    async def standardize(self, question: str) -> str:
        """Convert *question* to a boolean keyword query.

        Falls back to the question itself on any failure.
        """
        try:
            result = await self.llm.generate_structured(
                system=STANDARDIZE_INSTRUCTION,
                contents=f'User question: "{question}"',
                schema=StandardizeQueryResponse,
                temperature=0.1,
            )
        except ConfigurationError:
            raise
        except Exception as e:
            logger.warning("Error standardizing query, falling back to original: %s", e)
            return question

        if isinstance(result, ParseFailure):
            logger.warning("Unreadable standardized query, falling back to original")
            return question

        refined = strip_trailing_operator(result.value.refinedQuery)
        if not refined:
            logger.warning("Empty standardized query, falling back to original")
            return question
        logger.info("Standardized query: %s", refined)
        return refined

    async def broaden(self, failed_query: str) -> str:
        """Return a more general version of a query that found nothing.

        Falls back to *failed_query* with its quotes removed.
        """
        try:
            result = await self.llm.generate_structured(
                system=BROADEN_INSTRUCTION,
                contents=(
                    f'The following academic search query returned zero results: "{failed_query}". '
                    "Please provide a broader version of this query."
                ),
                schema=BroadenQueryResponse,
                temperature=0.5,
            )
        except ConfigurationError:
            raise
        except Exception as e:
            logger.warning("Error broadening query, dropping quotes instead: %s", e)
            return strip_quotes(failed_query)

        if isinstance(result, ParseFailure):
            logger.warning("Unreadable broadened query, dropping quotes instead")
            return strip_quotes(failed_query)

        broadened = strip_trailing_operator(result.value.broadenedQuery)
        if not broadened:
            return strip_quotes(failed_query)
        logger.info("Broadened query: %s", broadened)
        return broadened
