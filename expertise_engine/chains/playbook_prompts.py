"""Prompts for synthesizing and updating playbooks from expert documents."""

from expertise_engine.core.schemas_playbooks import PlaybookType, SourceDocument

SYNTHESIS_SYSTEM = """You are an expert at synthesizing multiple case studies and best practices into comprehensive, actionable playbooks. You excel at identifying patterns, extracting nuances, and creating practical frameworks.

SOURCE DOCUMENTS:
{sources}"""


# Per playbook type: (audience, length, sections)
PLAYBOOK_OUTLINES: dict[PlaybookType, tuple[str, str, list[str]]] = {
    PlaybookType.SALES_PLAYBOOK: (
        "Sales teams and individuals who need a complete sales methodology guide.",
        "5-8 pages. Be thorough but practical.",
        [
            "Executive Summary",
            "Core Sales Framework",
            "Prospecting & Lead Generation",
            "Qualification & Discovery",
            "Presentation & Demonstration",
            "Negotiation & Closing",
            "Decision Framework",
            "Implementation Templates",
            "Common Sales Challenges & Solutions",
            "Case Studies",
            "Resources & Next Steps",
        ],
    ),
    PlaybookType.CUSTOMER_SUCCESS_GUIDE: (
        "Customer success teams managing and growing customer relationships.",
        "4-6 pages. Be practical and focused on outcomes.",
        [
            "Overview",
            "Customer Journey Mapping",
            "Onboarding Excellence",
            "Adoption & Engagement",
            "Health Scoring & Monitoring",
            "Expansion & Growth",
            "Retention Strategies",
            "Customer Communication",
            "Success Metrics & KPIs",
            "Tools & Templates",
        ],
    ),
    PlaybookType.OPERATIONAL_PROCEDURES: (
        "Operations teams establishing standards and improving their processes.",
        "6-8 pages.",
        [
            "Introduction",
            "Core Operational Framework",
            "Process Documentation",
            "Quality Control & Assurance",
            "Performance Monitoring",
            "Issue Resolution Protocols",
            "Training & Onboarding",
            "Continuous Improvement",
            "Risk Management",
            "Compliance & Auditing",
        ],
    ),
    PlaybookType.STRATEGIC_PLANNING_DOCUMENT: (
        "Leadership teams and strategic planners.",
        "6-10 pages.",
        [
            "Purpose & Scope",
            "Strategic Planning Process",
            "Environmental Analysis",
            "Goal Setting & Objectives",
            "Strategy Development",
            "Implementation Planning",
            "Resource Allocation",
            "Risk Assessment & Mitigation",
            "Performance Measurement",
            "Review & Adaptation",
            "Communication & Alignment",
        ],
    ),
}

GENERATE_PROMPT = """You are creating a {type_name} by synthesizing insights from {count} different experiences and best practices.

=== YOUR TASK ===

Combine the most effective approaches from all source documents. The result should:
1. Identify common patterns and themes across the experiences
2. Turn them into a step-by-step framework
3. Include decision guidance for different scenarios
4. Provide templates and checklists where useful
5. Address the challenges the experts ran into and how to handle them
{title_line}
TARGET AUDIENCE: {audience}
LENGTH: {length}

=== STRUCTURE ===

# {type_name}

*Synthesized from {count} expert experiences*

---

{sections}

---
*Based on experiences shared by: {authors}*"""

UPDATE_PROMPT = """You are updating an existing playbook by incorporating new information.

EXISTING PLAYBOOK:
Title: {title}
Type: {type_value}
Content:
{existing_content}

=== YOUR TASK ===

Update the existing playbook with the following:
{new_sources_block}{instructions_block}
When updating the playbook:
1. {rule_integrate}
2. {rule_sections}
3. Keep the playbook's structure and flow
4. {rule_highlight}
5. Update examples, case studies and recommendations based on the new information
6. Keep the same professional tone and format

PRESERVE THE EXISTING STRUCTURE as much as possible, but enhance it with the new information.

TARGET AUDIENCE: The same audience as the original playbook ({type_value}).
LENGTH: Similar to the original, expanded only where new content adds significant value.

=== UPDATED PLAYBOOK ===

Return ONLY the complete updated playbook content in markdown. Keep the formatting style of the original."""


def render_source(doc: SourceDocument) -> str:
    """One source document block as shown to the model."""
    return (
        f"=== {doc.title} ===\n"
        f"Author: {doc.author_name or 'Unknown'} ({doc.author_role or 'Unknown role'})\n"
        f"Type: {doc.document_type or 'unknown'}\n"
        f"Content:\n{doc.content}\n---"
    )


def render_sources(docs: list[SourceDocument]) -> str:
    return "\n\n".join(render_source(doc) for doc in docs)


def build_synthesis_system(sources: list[SourceDocument]) -> str:
    return SYNTHESIS_SYSTEM.format(sources=render_sources(sources))


def build_generate_prompt(
    playbook_type: PlaybookType,
    sources: list[SourceDocument],
    title: str | None = None,
    instructions: str | None = None,
) -> str:
    audience, length, sections = PLAYBOOK_OUTLINES[playbook_type]
    authors = sorted({doc.author_name for doc in sources if doc.author_name})
    title_line = f"\nUse this title for the playbook: {title}\n" if title else ""
    prompt = GENERATE_PROMPT.format(
        type_name=playbook_type.display_name,
        count=len(sources),
        title_line=title_line,
        audience=audience,
        length=length,
        sections="\n".join(f"## {section}" for section in sections),
        authors=", ".join(authors) or "the contributing experts",
    )
    if instructions:
        prompt += f"\n\nADDITIONAL INSTRUCTIONS:\n{instructions}"
    return prompt


def build_update_prompt(
    playbook_type: PlaybookType,
    title: str,
    existing_content: str,
    new_sources: list[SourceDocument],
    instructions: str | None = None,
) -> str:
    has_new = bool(new_sources)
    new_sources_block = ""
    if has_new:
        new_sources_block = (
            f"\nNEW EXPERIENCES TO INCORPORATE:\n{render_sources(new_sources)}\n\n"
            "Analyze these new experiences for fresh insights, patterns, and best practices. "
            "The remaining source documents are provided as context only.\n"
        )
    instructions_block = ""
    if instructions:
        instructions_block = (
            f"\nADDITIONAL CONTEXT/INSTRUCTIONS:\n{instructions}\n\n"
            "Follow these specific instructions when updating the playbook.\n"
        )
    return UPDATE_PROMPT.format(
        title=title,
        type_value=playbook_type.value,
        existing_content=existing_content,
        new_sources_block=new_sources_block,
        instructions_block=instructions_block,
        rule_integrate=(
            "Integrate the new experiences into existing sections where relevant"
            if has_new
            else "Apply the additional context to enhance the content"
        ),
        rule_sections=(
            "Add new sections if the new experiences introduce significant new concepts"
            if has_new
            else "Update sections based on the provided context"
        ),
        rule_highlight=(
            "Highlight where new experiences enhance or contradict existing guidance"
            if has_new
            else "Make sure all updates align with the provided context"
        ),
    )
