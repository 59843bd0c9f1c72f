"""
Assessment Catalog — pillars, questions, maturity levels, remediation features.

Static definitions only. Nothing here holds state; every other service
looks questions and pillars up through this module.

Usage:
    from pp_assessment.services.catalog import PILLARS, get_pillar, get_question
    pillar = get_pillar("security")
    q = get_question("sec-2025-1")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pp_assessment.core.exceptions import NotFoundError


# ═════════════════════════════════════════════════════════════════════════════
# Enums & Data Classes
# ═════════════════════════════════════════════════════════════════════════════

class QuestionType(str, Enum):
    BOOLEAN = "boolean"
    SCALE = "scale"
    PERCENTAGE = "percentage"
    TEXT = "text"


class Impact(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


@dataclass(frozen=True)
class Question:
    """Immutable question definition."""
    id: str
    pillar_id: str
    text: str
    type: QuestionType
    weight: float
    category: str
    best_practice: str = ""
    required: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pillar_id": self.pillar_id,
            "text": self.text,
            "type": self.type.value,
            "weight": self.weight,
            "category": self.category,
            "best_practice": self.best_practice,
            "required": self.required,
        }


@dataclass(frozen=True)
class Pillar:
    """Assessment pillar with its ordered questions and target score."""
    id: str
    name: str
    description: str
    weight: float
    target: float
    questions: tuple[Question, ...] = ()

    @property
    def total_question_weight(self) -> float:
        return sum(q.weight for q in self.questions)

    def to_dict(self, include_questions: bool = True) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "weight": self.weight,
            "target": self.target,
            "question_count": len(self.questions),
        }
        if include_questions:
            d["questions"] = [q.to_dict() for q in self.questions]
        return d


@dataclass(frozen=True)
class MaturityLevel:
    level: int
    name: str
    description: str
    min_score: float
    characteristics: tuple[str, ...] = ()


@dataclass(frozen=True)
class Feature:
    """Remediation feature checked against a response threshold."""
    id: str
    title: str
    description: str
    category: str
    impact: Impact
    threshold: int
    points: int = field(default=0)


# ═════════════════════════════════════════════════════════════════════════════
# Maturity Model
# ═════════════════════════════════════════════════════════════════════════════

MATURITY_LEVELS: tuple[MaturityLevel, ...] = (
    MaturityLevel(1, "Initial",
                  "Ad hoc processes, pockets of experimentation, no overall strategy", 0,
                  ("No formal governance", "Shadow IT prevalent", "No security policies",
                   "Individual initiatives")),
    MaturityLevel(2, "Repeatable",
                  "Well-documented processes, central IT team implements controls", 40,
                  ("Basic DLP policies exist", "Some documentation", "IT-led governance",
                   "Manual monitoring")),
    MaturityLevel(3, "Defined",
                  "Standardized practices confirmed as standard business processes", 60,
                  ("CoE established", "Standard policies enforced", "Training programs exist",
                   "Regular audits")),
    MaturityLevel(4, "Capable",
                  "Quantitatively managed processes with agreed-upon metrics", 75,
                  ("Metrics-driven governance", "Automated monitoring", "Proactive management",
                   "Continuous improvement")),
    MaturityLevel(5, "Efficient",
                  "Optimized state with continuous improvement", 90,
                  ("Innovation culture", "Self-service governance", "AI-driven insights",
                   "Industry leadership")),
)

MATURITY_RECOMMENDATIONS: dict[int, tuple[str, ...]] = {
    1: ("Deploy Center of Excellence Starter Kit immediately",
        "Implement basic DLP policies using 'block first' approach",
        "Designate Power Platform administrators"),
    2: ("Upgrade to Managed Environments for production workloads",
        "Enable Security Hub and act on recommendations",
        "Establish formal training and certification program"),
    3: ("Implement automated governance at scale",
        "Configure advanced security features (CAE, CMK)",
        "Establish metrics-driven governance with KPIs"),
    4: ("Optimize for continuous improvement culture",
        "Implement AI-driven governance with Copilot",
        "Share best practices with Microsoft community"),
    5: ("Maintain leadership position through innovation",
        "Contribute to Power Platform product development",
        "Mentor other organizations on their journey"),
}


# ═════════════════════════════════════════════════════════════════════════════
# Questions
# ═════════════════════════════════════════════════════════════════════════════

def _q(qid, pillar_id, text, weight, category, best_practice, qtype=QuestionType.SCALE,
       required=False) -> Question:
    return Question(qid, pillar_id, text, qtype, weight, category, best_practice, required)


_GOVERNANCE = (
    _q("gov-2025-1", "governance",
       "Is the Center of Excellence (CoE) Starter Kit deployed and updated monthly?", 5, "Governance",
       "Deploy all components (Core, Governance, Nurture) and automate monthly updates. "
       "Use the CoE Setup and Upgrade Wizard app for guided installation.", required=True),
    _q("gov-2025-2", "governance",
       "Are Managed Environments configured for production workloads?", 5, "Governance",
       "Enable Power Platform Advisor for proactive recommendations. "
       "Use Environment Groups for scale management."),
    _q("gov-2025-3", "governance",
       "Is the Power Platform Security Hub enabled and monitored?", 5, "Governance",
       "Review Security Hub weekly and act on all High priority recommendations. "
       "Enable tenant-wide analytics for score calculation."),
    _q("gov-2025-4", "governance",
       "Are DLP policies configured following the 'block first' strategy?", 5, "Governance",
       "Configure both tenant-level and environment-specific DLP policies. "
       "Create business/non-business connector groups."),
    _q("gov-2025-5", "governance",
       "Is automated bulk governance configured for scale management?", 4, "Governance",
       "Implement PowerShell automation for bulk operations. Use CoE Kit for inventory management."),
    _q("dlp-2025-1", "governance",
       "Are DLP policies configured with custom connector parity enforcement?", 5, "DLP Advanced",
       "Apply same governance standards to custom connectors as Microsoft connectors. "
       "Use endpoint filtering for granular control.", required=True),
    _q("release-2025-1", "governance",
       "Is your organization actively monitoring Microsoft Release Plans for Power Platform updates?",
       4, "Release Management",
       "Assign team member to review release plans monthly. Test preview features in sandbox "
       "environments. Plan for mandatory updates.", required=True),
    _q("dataverse-2025-1", "governance",
       "Are you leveraging latest Dataverse features for performance and governance?", 4,
       "Platform Features",
       "Use elastic tables for telemetry/logging data. Enable Dataverse search for better "
       "performance. Leverage bulk operation APIs."),
    _q("regional-2025-1", "governance",
       "Are regional compliance requirements (GDPR, data localization) configured per region?", 5,
       "Regional Governance",
       "Configure environment-specific DLP policies based on regional requirements. "
       "Use geo-routing for data residency compliance.", required=True),
    _q("regional-2025-2", "governance",
       "Are timezone and currency configurations properly set for each regional environment?", 4,
       "Regional Governance",
       "Use UTC for all backend processes, display local time in UI. "
       "Implement multi-currency support with exchange rate APIs."),
    _q("governance-level-2025-1", "governance",
       "Are tenant-level policies (security, compliance, cost) properly separated from "
       "environment-level controls?", 5, "Governance Architecture",
       "Use Policy Inheritance framework - tenant policies are inherited but can be overridden "
       "at environment level where permitted.", required=True),
    _q("governance-level-2025-2", "governance",
       "Is policy inheritance properly configured with appropriate override permissions?", 4,
       "Governance Architecture",
       "Use Environment Groups for policy management at scale. "
       "Enable selective overrides with approval workflows."),
    _q("governance-level-2025-3", "governance",
       "Are environment-specific controls (access, retention, quotas) properly configured per "
       "environment type?", 4, "Governance Architecture",
       "Automate environment provisioning with governance templates. "
       "Use PowerShell/CLI for consistent configuration."),
)

_SECURITY = (
    _q("sec-2025-1", "security",
       "Is data exfiltration prevention configured for Dataverse?", 5, "Security",
       "Create allowlist of approved applications for each environment. Review quarterly and "
       "remove unused applications. Monitor access logs for anomalies.", required=True),
    _q("sec-2025-2", "security",
       "Is Microsoft Entra ID Continuous Access Evaluation (CAE) enabled?", 5, "Security",
       "Enable CAE with conditional access policies for all Power Platform access. "
       "Configure with risk-based policies and MFA requirements."),
    _q("sec-2025-3", "security",
       "Are customer-managed keys (CMK) configured for sensitive data?", 4, "Security",
       "Use CMK for all environments containing regulated data (PII, PHI, financial). "
       "Implement key rotation policy and monitor key usage."),
    _q("sec-2025-4", "security",
       "Is clickjacking protection enabled for all Power Pages?", 4, "Security",
       "Enable X-Frame-Options and Content Security Policy headers. Test all pages to ensure "
       "legitimate iframe usage isn't broken.", qtype=QuestionType.BOOLEAN),
    _q("sec-2025-5", "security",
       "Are sensitivity labels configured and enforced?", 4, "Security",
       "Define 3-5 classification levels and enforce mandatory labeling. "
       "Train users on proper classification and monitor compliance."),
)

_RELIABILITY = (
    _q("rel-2025-1", "reliability",
       "Are automated health checks configured for critical apps?", 5, "Reliability",
       "Configure synthetic monitors to test critical user journeys every 5 minutes. "
       "Alert on >3 second load times or <99% success rate."),
    _q("rel-2025-2", "reliability",
       "Is environment backup and recovery tested quarterly?", 5, "Reliability",
       "Maintain 3 backup types: automated system backups, manual on-demand backups before "
       "changes, and cross-region copies for DR.", required=True),
    _q("rel-2025-3", "reliability",
       "Are flow retry policies configured for transient failures?", 4, "Reliability",
       "Default: 4 retries with exponential backoff (5s, 15s, 60s, 300s). "
       "Configure dead letter queues for permanent failures."),
    _q("rel-2025-4", "reliability",
       "Is capacity monitoring automated with alerts?", 4, "Reliability",
       "Implement tiered alerts: 70% (warning), 85% (critical), 95% (emergency). "
       "Automate capacity reports to leadership."),
    _q("rel-2025-5", "reliability",
       "Is multi-region deployment configured for critical apps?", 3, "Reliability",
       "Primary/secondary model with automated failover. Test failover monthly and maintain "
       "runbooks for manual intervention."),
)

_PERFORMANCE = (
    _q("perf-2025-1", "performance",
       "Are large datasets using pagination and lazy loading?", 5, "Performance",
       "Load maximum 100 records initially, implement search-driven data access, "
       "use indexed columns for filtering.", required=True),
    _q("perf-2025-2", "performance",
       "Is Power Automate process mining identifying bottlenecks?", 4, "Performance",
       "Run process mining quarterly, focus on high-volume processes, "
       "implement suggested optimizations in phases."),
    _q("perf-2025-3", "performance",
       "Are concurrent operations optimized with batching?", 4, "Performance",
       "Batch size of 100-250 operations, implement retry logic, "
       "use changesets for transactional consistency."),
    _q("perf-2025-4", "performance",
       "Is caching implemented for reference data?", 3, "Performance",
       "Cache reference data on app start, refresh every 24 hours or on-demand, "
       "monitor cache hit rates."),
    _q("perf-2025-5", "performance",
       "Are performance baselines established and monitored?", 4, "Performance",
       "Weekly performance reviews, monthly trend analysis, "
       "automated alerting on 20% degradation from baseline."),
)

_OPERATIONS = (
    _q("ops-2025-1", "operations",
       "Is ALM with automated CI/CD pipelines implemented?", 5, "Operations",
       "Automated builds on commit, automated tests in build pipeline, manual approval for "
       "production, automated rollback capability.", required=True),
    _q("ops-2025-2", "operations",
       "Are runbooks maintained for incident response?", 5, "Operations",
       "Runbook for each critical process, quarterly reviews and updates, practice scenarios "
       "monthly, version control runbooks."),
    _q("ops-2025-3", "operations",
       "Is solution checker integrated in deployment pipeline?", 4, "Operations",
       "Block deployment on critical issues, require justification for medium issue overrides, "
       "track issue trends over time."),
    _q("ops-2025-4", "operations",
       "Are maker governance policies enforced?", 4, "Operations",
       "Default environment for experimentation only, production apps require IT review, "
       "mandatory training for makers."),
    _q("ops-2025-5", "operations",
       "Is cost monitoring and optimization automated?", 3, "Operations",
       "Weekly cost reports, monthly optimization reviews, automated alerts for anomalies, "
       "chargeback to business units."),
    _q("ops-2025-6", "operations",
       "Which ALM tooling is in use (Power Platform Pipelines, Azure DevOps, GitHub Actions)?", 1,
       "Operations",
       "Standardize on one pipeline toolchain and document it in the CoE wiki.",
       qtype=QuestionType.TEXT),
)

_EXPERIENCE = (
    _q("exp-2025-1", "experience",
       "Do apps and portals meet WCAG 2.2 accessibility criteria?", 5, "Experience",
       "Run Accessibility Checker in Power Apps Studio before every release and include "
       "screen-reader testing in UAT.", required=True),
    _q("exp-2025-2", "experience",
       "Is Copilot usage in Power Platform governed with clear policies?", 4, "Experience",
       "Define which environments allow Copilot features, review generated content and "
       "communicate acceptable-use guidance to makers."),
    _q("exp-2025-3", "experience",
       "Is maker and end-user adoption tracked with analytics?", 4, "Experience",
       "Use CoE Kit adoption dashboards and Power Platform analytics; review monthly with "
       "business sponsors."),
    _q("exp-2025-4", "experience",
       "What percentage of active makers have completed Power Platform training?", 3,
       "Experience",
       "Make the maker onboarding path mandatory before granting environment access.",
       qtype=QuestionType.PERCENTAGE),
)


# ═════════════════════════════════════════════════════════════════════════════
# Pillars
# ═════════════════════════════════════════════════════════════════════════════

PILLARS: tuple[Pillar, ...] = (
    Pillar("governance", "Governance & Administration",
           "Organizational control, compliance, and administration capabilities", 25, 80, _GOVERNANCE),
    Pillar("security", "Security & Compliance",
           "Security controls, compliance measures, and data protection", 25, 85, _SECURITY),
    Pillar("reliability", "Reliability",
           "Ensure workload meets uptime and recovery targets", 15, 75, _RELIABILITY),
    Pillar("performance", "Performance Efficiency",
           "Optimize resource usage and meet performance targets", 15, 70, _PERFORMANCE),
    Pillar("operations", "Operational Excellence",
           "Run and monitor systems to deliver business value", 20, 75, _OPERATIONS),
    Pillar("experience", "Experience Optimization",
           "Accessibility, adoption and AI-assisted maker experience", 10, 80, _EXPERIENCE),
)

PILLARS_BY_ID: dict[str, Pillar] = {p.id: p for p in PILLARS}
QUESTIONS_BY_ID: dict[str, Question] = {q.id: q for p in PILLARS for q in p.questions}
PILLAR_TARGETS: dict[str, float] = {p.id: p.target for p in PILLARS}

DEMO_RESPONSES: dict[str, object] = {
    "gov-2025-1": 4, "gov-2025-2": 3, "gov-2025-3": 2, "gov-2025-4": 4, "gov-2025-5": 3,
    "sec-2025-1": 2, "sec-2025-2": 3, "sec-2025-3": 1, "sec-2025-4": True, "sec-2025-5": 3,
    "rel-2025-1": 4, "rel-2025-2": 3, "rel-2025-3": 3,
    "perf-2025-1": 2, "perf-2025-2": 3,
    "ops-2025-1": 4, "ops-2025-2": 2, "ops-2025-3": 3,
    "exp-2025-1": 5, "exp-2025-2": 3, "exp-2025-3": 4,
}


def get_pillar(pillar_id: str) -> Pillar:
    """Return a pillar by id.

    Raises:
        NotFoundError: If the pillar id is unknown.
    """
    pillar = PILLARS_BY_ID.get(pillar_id)
    if pillar is None:
        raise NotFoundError(resource="Pillar", resource_id=pillar_id)
    return pillar


def get_question(question_id: str) -> Question:
    """Return a question by id.

    Raises:
        NotFoundError: If the question id is unknown.
    """
    question = QUESTIONS_BY_ID.get(question_id)
    if question is None:
        raise NotFoundError(resource="Question", resource_id=question_id)
    return question


# ═════════════════════════════════════════════════════════════════════════════
# Remediation features
# ═════════════════════════════════════════════════════════════════════════════

CRITICAL_FEATURES: tuple[Feature, ...] = (
    Feature("sec-2025-1", "Enable Data Exfiltration Prevention",
            "Implement comprehensive data loss prevention policies to protect sensitive "
            "information from unauthorized access and exfiltration.",
            "Data Protection", Impact.HIGH, threshold=4, points=15),
    Feature("sec-2025-2", "Configure Continuous Access Evaluation",
            "Enable real-time access policy evaluation to adapt to changing security conditions "
            "and maintain zero-trust principles.",
            "Identity & Access", Impact.HIGH, threshold=4, points=15),
    Feature("gov-2025-4", "Implement DLP Policies",
            "Deploy comprehensive data loss prevention policies across all Power Platform "
            "workloads and environments.",
            "Governance", Impact.HIGH, threshold=4, points=15),
    Feature("regional-2025-1", "Configure Regional Compliance Requirements",
            "Implement region-specific compliance controls for GDPR, data localization, and "
            "regulatory requirements.",
            "Regional Governance", Impact.HIGH, threshold=4, points=15),
    Feature("governance-level-2025-1", "Establish Tenant vs Environment Level Controls",
            "Properly separate tenant-level policies from environment-specific controls with "
            "clear inheritance rules.",
            "Governance Architecture", Impact.HIGH, threshold=4, points=15),
)

IMPORTANT_FEATURES: tuple[Feature, ...] = (
    Feature("gov-2025-3", "Monitor Security Hub",
            "Establish continuous monitoring of security metrics and compliance status through "
            "Power Platform Security Hub.",
            "Monitoring", Impact.MEDIUM, threshold=3, points=10),
    Feature("sec-2025-3", "Configure Customer-Managed Keys",
            "Implement customer-managed encryption keys for enhanced data protection and "
            "compliance requirements.",
            "Encryption", Impact.MEDIUM, threshold=3, points=10),
    Feature("sec-2025-5", "Implement Sensitivity Labels",
            "Deploy Microsoft Purview sensitivity labels to classify and protect sensitive "
            "content across Power Platform.",
            "Information Protection", Impact.MEDIUM, threshold=3, points=10),
    Feature("regional-2025-2", "Configure Regional Settings (Timezone/Currency)",
            "Properly configure timezone and currency settings for each regional environment to "
            "prevent business logic errors.",
            "Regional Configuration", Impact.MEDIUM, threshold=3, points=10),
    Feature("governance-level-2025-2", "Configure Policy Inheritance",
            "Set up hierarchical policy management with appropriate override permissions for "
            "different environment types.",
            "Governance Architecture", Impact.MEDIUM, threshold=3, points=10),
    Feature("governance-level-2025-3", "Configure Environment-Specific Controls",
            "Implement environment-type specific governance controls for access, retention, and "
            "resource quotas.",
            "Environment Management", Impact.MEDIUM, threshold=3, points=10),
)

# Extra security-score credit for practices outside the feature lists: (question, threshold, points)
SUPPORTING_PRACTICES: tuple[tuple[str, int, int], ...] = (
    ("gov-2025-1", 4, 10),
    ("gov-2025-2", 4, 10),
    ("gov-2025-5", 3, 5),
)

# (question, requirement, weight): weight is deducted when the response is below 4
COMPLIANCE_REQUIREMENTS: tuple[tuple[str, str, int], ...] = (
    ("gov-2025-4", "DLP Policies", 20),
    ("sec-2025-1", "Data Exfiltration Prevention", 15),
    ("sec-2025-2", "Continuous Access Evaluation", 15),
    ("exp-2025-1", "WCAG 2.2 Compliance", 20),
    ("sec-2025-5", "Sensitivity Labels", 10),
    ("rel-2025-2", "Backup and Recovery Testing", 10),
    ("gov-2025-1", "CoE Deployment", 10),
)


# ── Roadmap templates ───────────────────────────────────────────────────────
#
# Critical features get a three-phase roadmap whose task names depend on the
# feature category; important features share a two-phase template.

_CRITICAL_TASKS: dict[str, tuple[tuple, ...]] = {
    # (name, description, hours, owner, acceptance criteria)
    "default": (
        ("Security Requirements Analysis", "Analyze current security posture and define requirements",
         16, "Security Architect", ("Requirements documented", "Stakeholder approval obtained")),
        ("Impact Assessment", "Assess impact on existing workflows and users",
         8, "Business Analyst", ("Impact analysis completed", "Mitigation plan created")),
        ("Security Policy Configuration", "Configure security policies in test environment",
         24, "Security Engineer", ("Policies configured", "Test environment validated")),
        ("User Acceptance Testing", "Conduct UAT with key stakeholders",
         16, "QA Team", ("UAT completed", "Issues documented and resolved")),
        ("Production Deployment", "Deploy security policies to production environment",
         12, "DevOps Engineer", ("Policies deployed", "Monitoring active")),
        ("Post-Deployment Validation", "Validate deployment and monitor for issues",
         8, "Security Team", ("Validation completed", "Monitoring dashboard active")),
    ),
    "Regional Governance": (
        ("Regional Compliance Mapping",
         "Map regional compliance requirements (GDPR, data residency, local regulations)",
         24, "Compliance Officer",
         ("Regional compliance matrix created", "Data residency requirements documented")),
        ("Multi-Region Environment Planning",
         "Plan environment structure for each region (EU-PROD, APAC-DEV, etc.)",
         16, "Global Infrastructure Lead",
         ("Environment naming convention defined", "Regional architecture approved")),
        ("Regional Environment Setup", "Create region-specific environments with compliance settings",
         32, "Global Infrastructure Lead",
         ("Regional environments created", "Compliance settings configured", "DLP policies per region")),
        ("Multi-Region Compliance Testing",
         "Test data residency, timezone handling, and cross-region restrictions",
         24, "Compliance Testing Team",
         ("Regional compliance verified", "Cross-border restrictions tested")),
        ("Global Production Rollout",
         "Deploy regional compliance settings across all production environments",
         24, "Global Operations Team",
         ("All regional environments deployed", "Compliance monitoring active",
          "Cross-region restrictions verified")),
        ("Global Compliance Validation",
         "Validate compliance across all regions and monitor for violations",
         16, "Global Compliance Team",
         ("Global compliance dashboard active", "Regional violation alerts configured")),
    ),
    "Governance Architecture": (
        ("Policy Architecture Design", "Design tenant vs environment policy architecture",
         16, "Governance Architect", ("Policy hierarchy documented", "Inheritance rules defined")),
        ("Environment Classification", "Classify environments by type and define governance levels",
         8, "Environment Manager", ("Environment types classified", "Governance profiles created")),
        ("Policy Hierarchy Implementation", "Implement tenant and environment level policy hierarchy",
         24, "Governance Engineer", ("Policy inheritance working", "Override permissions configured")),
        ("Policy Inheritance Testing", "Validate policy inheritance and override functionality",
         16, "Governance QA", ("Policy inheritance validated", "Override workflows tested")),
        ("Policy Hierarchy Deployment", "Deploy tenant and environment level policies to production",
         12, "Governance DevOps",
         ("Policy hierarchy active", "Inheritance rules enforced", "Override workflows operational")),
        ("Governance Monitoring Setup",
         "Set up monitoring for policy compliance and violations across environments",
         8, "Governance Operations",
         ("Governance dashboard operational", "Policy violation alerts configured")),
    ),
}

_CRITICAL_PHASES = (
    # (name, default duration, regional duration)
    ("Planning & Analysis", "1 week", "1 week"),
    ("Configuration & Testing", "2 weeks", "3 weeks"),
    ("Production Deployment", "1 week", "2 weeks"),
)

_CRITICAL_DELIVERABLES: dict[str, tuple[tuple[str, ...], ...]] = {
    "default": (("Security requirements document", "Impact assessment report"),
                ("Configured test environment", "UAT results"),
                ("Production deployment", "Monitoring dashboard")),
    "Regional Governance": (("Regional compliance document", "Multi-region architecture"),
                            ("Regional environments", "Compliance test results"),
                            ("Global compliance deployment", "Regional monitoring")),
    "Governance Architecture": (("Policy architecture document", "Environment classification"),
                                ("Policy hierarchy", "Inheritance test results"),
                                ("Governance production system", "Policy monitoring")),
}

_CRITICAL_META: dict[str, dict] = {
    "default": {
        "total_duration": "4-6 weeks",
        "prerequisites": ("Security team approval", "Admin access to Power Platform",
                          "Backup and rollback plan"),
        "risks": ("Potential user access disruption", "Configuration complexity",
                  "Integration with existing systems"),
        "evidence_required": ("Security policy documentation", "Implementation configuration screenshots",
                              "Validation test results", "Security team sign-off"),
        "evidence_optional": ("Risk assessment documentation", "User training completion records",
                              "Audit trail logs"),
        "validation_steps": ("Verify policy is active and enforced", "Test with sample data/scenarios",
                             "Review security logs for compliance", "Validate with security team"),
    },
    "Regional Governance": {
        "total_duration": "6-8 weeks",
        "prerequisites": ("Global compliance team approval", "Regional legal review completion",
                          "Multi-region admin access to Power Platform",
                          "Regional data residency requirements documented"),
        "risks": ("Cross-region data synchronization compliance violations",
                  "Timezone handling errors in business processes",
                  "Currency conversion calculation errors",
                  "Regional regulatory requirement changes during implementation"),
        "evidence_required": ("Regional compliance matrix documentation",
                              "Environment configuration screenshots per region",
                              "Data residency compliance verification",
                              "GDPR/regional regulation compliance sign-off",
                              "Cross-border data transfer restrictions testing"),
        "evidence_optional": ("Regional legal review documentation", "Multi-timezone testing results",
                              "Currency conversion testing", "Regional user training records"),
        "validation_steps": ("Verify regional environment compliance settings",
                             "Test cross-border data transfer restrictions",
                             "Validate timezone and currency configurations",
                             "Review regional compliance audit logs",
                             "Confirm GDPR right-to-be-forgotten implementation"),
    },
    "Governance Architecture": {
        "total_duration": "5-7 weeks",
        "prerequisites": ("Governance team approval", "Tenant admin access to Power Platform",
                          "Environment classification completed", "Policy architecture design approved"),
        "risks": ("Policy conflicts between tenant and environment levels",
                  "Unintended policy inheritance blocking development",
                  "Complex override workflows causing delays",
                  "Environment misclassification leading to wrong policies"),
        "evidence_required": ("Policy hierarchy documentation", "Tenant vs environment control matrix",
                              "Policy inheritance configuration screenshots",
                              "Environment classification documentation", "Governance team approval"),
        "evidence_optional": ("Environment lifecycle documentation",
                              "Policy conflict resolution procedures",
                              "Override approval workflows", "Governance monitoring dashboard"),
        "validation_steps": ("Verify tenant-level policies are active",
                             "Test environment-level policy inheritance",
                             "Validate override permissions and workflows",
                             "Review policy compliance across all environments",
                             "Confirm governance monitoring is operational"),
    },
}

IMPORTANT_META: dict = {
    "total_duration": "2-4 weeks",
    "prerequisites": ("Admin access", "Team availability"),
    "risks": ("Configuration complexity", "User adoption"),
    "evidence_required": ("Configuration documentation", "Implementation screenshots", "Testing results"),
    "evidence_optional": ("Training materials", "User feedback"),
    "validation_steps": ("Verify configuration", "Test functionality", "Review logs"),
}


def critical_roadmap_template(category: str) -> tuple[dict, list[dict]]:
    """Return ``(meta, phases)`` for a critical feature of the given category.

    Each phase is ``{"phase", "name", "duration", "deliverables",
    "dependencies", "tasks"}``; each task is ``{"suffix", "name",
    "description", "estimated_hours", "assigned_to", "acceptance_criteria"}``.
    """
    key = category if category in _CRITICAL_TASKS else "default"
    tasks = _CRITICAL_TASKS[key]
    deliverables = _CRITICAL_DELIVERABLES[key]
    phases = []
    for idx, (name, duration, regional_duration) in enumerate(_CRITICAL_PHASES):
        phase_tasks = []
        for offset in (0, 1):
            task_no = idx * 2 + offset + 1
            t_name, t_desc, hours, owner, criteria = tasks[task_no - 1]
            phase_tasks.append({
                "suffix": f"task-{task_no}",
                "name": t_name,
                "description": t_desc,
                "estimated_hours": hours,
                "assigned_to": owner,
                "acceptance_criteria": list(criteria),
            })
        phases.append({
            "phase": idx + 1,
            "name": name,
            "duration": regional_duration if key == "Regional Governance" else duration,
            "deliverables": list(deliverables[idx]),
            "dependencies": [] if idx == 0 else [f"Phase {idx} completion"],
            "tasks": phase_tasks,
        })
    return _CRITICAL_META[key], phases


def important_roadmap_template() -> tuple[dict, list[dict]]:
    """Return ``(meta, phases)`` shared by every important feature."""
    phases = [
        {
            "phase": 1,
            "name": "Planning",
            "duration": "1 week",
            "deliverables": ["Requirements document"],
            "dependencies": [],
            "tasks": [{
                "suffix": "plan-1",
                "name": "Requirements Gathering",
                "description": "Define implementation requirements",
                "estimated_hours": 8,
                "assigned_to": "Team Lead",
                "acceptance_criteria": ["Requirements defined"],
            }],
        },
        {
            "phase": 2,
            "name": "Implementation",
            "duration": "1-3 weeks",
            "deliverables": ["Implemented solution"],
            "dependencies": ["Phase 1 completion"],
            "tasks": [{
                "suffix": "impl-1",
                "name": "Configuration",
                "description": "Implement configuration",
                "estimated_hours": 16,
                "assigned_to": "Engineer",
                "acceptance_criteria": ["Configuration completed"],
            }],
        },
    ]
    return IMPORTANT_META, phases


# ── Category → pillar mapping ───────────────────────────────────────────────

_CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("security", ("data protection", "identity", "access", "encryption",
                  "information protection", "security", "compliance")),
    ("governance", ("governance", "environment management", "administration")),
    ("performance", ("performance", "optimization", "efficiency")),
    ("reliability", ("reliability", "monitoring", "backup", "disaster recovery")),
    ("operations", ("operations", "automation", "deployment")),
)


def map_category_to_pillar(category: str) -> str:
    """Map a recommendation category to the pillar whose score it moves.

    Keyword rules are checked in order; failing those, a pillar whose id or
    name contains the category wins. Defaults to ``"governance"``.
    """
    lowered = (category or "").lower()
    for pillar_id, keywords in _CATEGORY_KEYWORDS:
        if any(k in lowered for k in keywords):
            return pillar_id
    for pillar in PILLARS:
        if lowered and (pillar.id == lowered or lowered in pillar.name.lower()):
            return pillar.id
    return "governance"
