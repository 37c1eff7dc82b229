"""Sample diagrams offered by the import dialog."""

FLOWCHART_EXAMPLE = """graph TD
    A[Start] --> B{Decide}
    B -->|yes| C[Process]
    B -->|no| D[Finish]
    C --> D"""

OUTLINE_EXAMPLE = """- Project kickoff
  - Requirements
    - User research
    - Competitor analysis
  - Design
    - UI design
    - Interaction design
- Development
  - Frontend
  - Backend
  - Testing
- Release"""

UML_CLASS_EXAMPLE = """@startuml
class User {
  -name: string
  -email: string
  +login()
  +logout()
}

class Order {
  -id: number
  -total: number
  +calculate()
}

class Product {
  -name: string
  -price: number
}

User --> Order : places
Order --> Product : contains
@enduml"""

UML_SEQUENCE_EXAMPLE = """@startuml
participant User
participant System
participant Database

User -> System: login request
System -> Database: query user
Database -> System: user record
System -> User: login ok
@enduml"""

UML_ACTIVITY_EXAMPLE = """@startuml
start
:Sign in;
:Verify identity;
if (verified?) then
  :Show home page;
else
  :Show error;
endif
:Done;
stop
@enduml"""

UML_EXAMPLES = {
    "class": UML_CLASS_EXAMPLE,
    "sequence": UML_SEQUENCE_EXAMPLE,
    "activity": UML_ACTIVITY_EXAMPLE,
}
