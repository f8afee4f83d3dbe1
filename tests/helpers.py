import asyncio


SAMPLE_ANALYSIS = {
    "summary": {"critical": 1, "high": 2, "medium": 0, "low": 1, "total": 4},
    "insights": "One critical deserialization issue dominates the risk.",
    "prioritizedIssues": [
        {
            "id": "1",
            "title": "Remote code execution in log4j",
            "severity": "Critical",
            "package": "log4j-core",
            "cve": "CVE-2021-44228",
            "priorityScore": 10,
            "aiExplanation": "JNDI lookups allow remote code execution.",
            "remediation": "Upgrade to 2.17.1",
            "falsePositiveRisk": "Low",
            "affectedFiles": ["pom.xml"],
        }
    ],
    "recommendations": ["Upgrade log4j", "Enable dependency scanning"],
}

SCAN_CSV = (
    b"title,severity,package,cve,file\n"
    b"Log4Shell,Critical,log4j-core,CVE-2021-44228,pom.xml\n"
    b"Prototype pollution,High,lodash,CVE-2020-8203,package.json\n"
    b"ReDoS,Low,minimatch,CVE-2022-3517,package.json\n"
)


class FakeAI:
    def __init__(self, result=None, error=None, delay=0):
        self.result = result if result is not None else SAMPLE_ANALYSIS
        self.error = error
        self.delay = delay
        self.calls = []

    async def analyze(self, rows, total_rows):
        self.calls.append((rows, total_rows))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


